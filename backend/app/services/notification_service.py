"""
Notification Service.

Inbox operations exposed by the API: listing, creation, bulk send, read
state, deletion and per-recipient statistics.

Each mutating method commits its own transaction and then publishes a
``NotificationEvent``; the activity logger picks those up asynchronously.
"""

import logging
import math
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.events import Actor, NotificationEvent, event_bus
from backend.app.core.exceptions import NotFoundError, ValidationError
from backend.app.models.notification import Notification
from backend.app.models.notification_enums import NotificationType, NotificationCategory
from backend.app.models.user import User
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
    GroupCount,
    RecentNotification,
)
from backend.app.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

RECENT_NOTIFICATIONS_LIMIT = 5


def _publish(event_type: str, actor: Optional[Actor], action: str, **meta) -> None:
    """Announce a committed change; ``action`` reads after the actor's name."""
    description = f"{actor.name} {action}" if actor else action
    meta.setdefault("category", "notification")
    event_bus.publish(NotificationEvent(type=event_type, description=description, actor=actor, meta=meta))


async def _require_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


class NotificationService:

    @staticmethod
    async def list_for_recipient(
        db: AsyncSession,
        recipient_id: int,
        page: int = 1,
        limit: int = 20,
        is_read: Optional[bool] = None,
        type: Optional[NotificationType] = None,
        category: Optional[NotificationCategory] = None
    ) -> NotificationListResponse:
        """
        Page through a recipient's inbox, newest first.

        ``unreadCount`` ignores the filters; it is always the recipient's
        total unread.
        """
        await _require_user(db, recipient_id)

        filters = {"recipient_id": recipient_id, "is_read": is_read, "type": type, "category": category}
        notifications = await NotificationStore.find(db, filters, skip=(page - 1) * limit, limit=limit)
        total = await NotificationStore.count(db, filters)
        unread = await NotificationStore.count(db, {"recipient_id": recipient_id, "is_read": False})

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in notifications],
            total_pages=math.ceil(total / limit),
            current_page=page,
            total=total,
            unread_count=unread
        )

    @staticmethod
    async def get(db: AsyncSession, notification_id: int) -> Notification:
        notification = await NotificationStore.find_by_id(db, notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        return notification

    @staticmethod
    async def create(db: AsyncSession, payload: NotificationCreate, actor: Optional[Actor] = None) -> Notification:
        """Create one notification addressed to ``payload.recipient``."""
        notification = await NotificationStore.insert(db, payload.to_record())
        await db.commit()

        [notification] = await NotificationStore.reload(db, [notification.id])
        logger.info("Notification %s created for user %s", notification.id, notification.recipient_id)

        _publish(
            "notification_created", actor,
            f'created notification "{notification.title}"',
            notificationId=notification.id,
            recipientId=notification.recipient_id,
        )
        return notification

    @staticmethod
    async def bulk_send(
        db: AsyncSession,
        request: BulkNotificationRequest,
        actor: Optional[Actor] = None
    ) -> BulkNotificationResponse:
        """
        Send the same notification to every listed recipient.

        All rows are inserted in one transaction; one invalid recipient
        rejects the whole batch. The sender is the caller, when known.
        """
        if not request.recipients:
            raise ValidationError("Recipients array is required")

        records = [
            {
                "title": request.title,
                "message": request.message,
                "type": request.type,
                "category": request.category,
                "action_url": request.action_url,
                "recipient_id": recipient_id,
                "sender_id": actor.id if actor else None,
            }
            for recipient_id in request.recipients
        ]
        created = await NotificationStore.insert_many(db, records)
        await db.commit()

        notifications = await NotificationStore.reload(db, [n.id for n in created])
        logger.info("Bulk sent %d notifications", len(notifications))

        _publish(
            "notifications_bulk_sent", actor,
            f"sent {len(notifications)} notifications",
            recipientIds=list(request.recipients),
        )
        return BulkNotificationResponse(
            message=f"{len(notifications)} notifications sent successfully",
            notifications=[NotificationResponse.model_validate(n) for n in notifications]
        )

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, actor: Optional[Actor] = None) -> Notification:
        """
        Mark one notification as read.

        Idempotent: a second call succeeds and leaves ``readAt`` as it was.
        Every call publishes ``notification_read``; ``alreadyRead`` tells
        repeat calls apart.
        """
        notification = await NotificationService.get(db, notification_id)
        changed = await NotificationStore.mark_read(db, notification)
        await db.commit()

        _publish(
            "notification_read", actor,
            f'marked notification "{notification.title}" as read',
            notificationId=notification.id,
            alreadyRead=not changed,
        )
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, recipient_id: int, actor: Optional[Actor] = None) -> MarkAllReadResponse:
        modified = await NotificationStore.mark_all_read(db, recipient_id)
        await db.commit()

        _publish(
            "notifications_all_read", actor,
            "marked all notifications as read",
            recipientId=recipient_id,
            modifiedCount=modified,
        )
        return MarkAllReadResponse(message="All notifications marked as read", modified_count=modified)

    @staticmethod
    async def delete(db: AsyncSession, notification_id: int, actor: Optional[Actor] = None) -> MessageResponse:
        notification = await NotificationStore.delete_by_id(db, notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        await db.commit()

        _publish(
            "notification_deleted", actor,
            f'deleted notification "{notification.title}"',
            notificationId=notification_id,
        )
        return MessageResponse(message="Notification deleted successfully")

    @staticmethod
    async def delete_all(db: AsyncSession, recipient_id: int, actor: Optional[Actor] = None) -> DeleteAllResponse:
        deleted = await NotificationStore.delete_many(db, {"recipient_id": recipient_id})
        await db.commit()

        _publish(
            "notifications_all_deleted", actor,
            "deleted all notifications",
            recipientId=recipient_id,
            deletedCount=deleted,
        )
        return DeleteAllResponse(message="All notifications deleted successfully", deleted_count=deleted)

    @staticmethod
    async def unread_count(db: AsyncSession, recipient_id: int) -> UnreadCountResponse:
        unread = await NotificationStore.count(db, {"recipient_id": recipient_id, "is_read": False})
        return UnreadCountResponse(unread_count=unread)

    @staticmethod
    async def stats(db: AsyncSession, recipient_id: int) -> NotificationStatsResponse:
        """Totals, type and category breakdowns, and the five newest notifications."""
        total = await NotificationStore.count(db, {"recipient_id": recipient_id})
        unread = await NotificationStore.count(db, {"recipient_id": recipient_id, "is_read": False})
        type_stats = await NotificationStore.group_counts(db, recipient_id, Notification.type)
        category_stats = await NotificationStore.group_counts(db, recipient_id, Notification.category)
        recent = await NotificationStore.find(db, {"recipient_id": recipient_id}, limit=RECENT_NOTIFICATIONS_LIMIT)

        return NotificationStatsResponse(
            total_notifications=total,
            unread_notifications=unread,
            read_notifications=total - unread,
            type_stats=[GroupCount(_id=value, count=count) for value, count in type_stats],
            category_stats=[GroupCount(_id=value, count=count) for value, count in category_stats],
            recent_notifications=[RecentNotification.model_validate(n) for n in recent]
        )
