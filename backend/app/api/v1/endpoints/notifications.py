"""
Notification API Endpoints.

Per-recipient inbox, direct and bulk sends, read state, deletion,
statistics and the activity-to-notification generator.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.dependencies import get_optional_actor
from backend.app.core.events import Actor
from backend.app.core.redis_client import get_redis
from backend.app.db.session import get_db
from backend.app.models.notification_enums import NotificationType, NotificationCategory
from backend.app.schemas.notification import (
    NotificationCreate,
    BulkNotificationRequest,
    NotificationResponse,
    NotificationListResponse,
    BulkNotificationResponse,
    MessageResponse,
    MarkAllReadResponse,
    DeleteAllResponse,
    UnreadCountResponse,
    NotificationStatsResponse,
    GenerationResponse,
)
from backend.app.services.activity_notifications import generate_notifications_from_activities
from backend.app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/user/{user_id}", response_model=NotificationListResponse)
async def list_user_notifications(
    user_id: int = Path(...),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.notifications_page_size, ge=1, le=settings.notifications_max_page_size),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    type: Optional[NotificationType] = Query(None),
    category: Optional[NotificationCategory] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """
    List a user's notifications, newest first.

    Filters (`isRead`, `type`, `category`) narrow the page and `total`;
    `unreadCount` is always the user's overall unread count.
    """
    return await NotificationService.list_for_recipient(
        db, user_id, page=page, limit=limit, is_read=is_read, type=type, category=category
    )


@router.get("/user/{user_id}/stats", response_model=NotificationStatsResponse)
async def get_notification_stats(
    user_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Totals, type/category breakdowns and the five most recent notifications."""
    return await NotificationService.stats(db, user_id)


@router.get("/user/{user_id}/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    user_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    return await NotificationService.unread_count(db, user_id)


@router.post("/generate-from-activities", response_model=GenerationResponse)
async def generate_from_activities(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Create notifications for recent activities.

    Safe to call repeatedly: an activity never produces a second
    notification. Returns 409 while another run is in progress.
    """
    result = await generate_notifications_from_activities(db, redis)
    return GenerationResponse(
        message=result.message,
        count=result.count,
        notifications=[NotificationResponse.model_validate(n) for n in result.notifications]
    )


@router.post("/bulk", response_model=BulkNotificationResponse, status_code=status.HTTP_201_CREATED)
async def send_bulk_notifications(
    request: BulkNotificationRequest,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db)
):
    """Send one notification to each user in `recipients`, all or nothing."""
    return await NotificationService.bulk_send(db, request, actor)


@router.post("", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    payload: NotificationCreate,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db)
):
    return await NotificationService.create(db, payload, actor)


@router.patch("/user/{user_id}/read-all", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    user_id: int = Path(...),
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db)
):
    """Mark all of a user's unread notifications as read."""
    return await NotificationService.mark_all_read(db, user_id, actor)


@router.delete("/user/{user_id}/all", response_model=DeleteAllResponse)
async def delete_all_notifications(
    user_id: int = Path(...),
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db)
):
    return await NotificationService.delete_all(db, user_id, actor)


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    return await NotificationService.get(db, notification_id)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int = Path(...),
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db)
):
    """Mark a notification as read. Repeating the call keeps the original `readAt`."""
    return await NotificationService.mark_read(db, notification_id, actor)


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: int = Path(...),
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db)
):
    return await NotificationService.delete(db, notification_id, actor)
