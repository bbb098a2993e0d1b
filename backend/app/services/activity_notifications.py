"""
Activity-to-Notification Generator.

Turns recent activities into notifications for the user who performed
them. Each activity produces at most one notification; the activity ID is
stored in ``metadata.activityId`` and checked before inserting.

Runs are serialised across processes with a Redis lock.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import AppException, GenerationInProgressError, InternalError
from backend.app.core.redis_client import LockNotAcquired, refresh_lock, run_lock
from backend.app.core.timeutils import utc_now
from backend.app.models.notification import Notification
from backend.app.models.notification_enums import NotificationType, NotificationCategory
from backend.app.models.user import User
from backend.app.services.activity_log import list_activities_since
from backend.app.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

GENERATOR_LOCK_NAME = "notifications:generate"
DEFAULT_TITLE = "System Activity"

# activity type -> (title, severity)
ACTIVITY_NOTIFICATIONS = {
    "project_created": ("New Project Created", NotificationType.SUCCESS),
    "project_updated": ("Project Updated", NotificationType.INFO),
    "project_deleted": ("Project Deleted", NotificationType.WARNING),
    "project_deadline": ("Project Deadline Reminder", NotificationType.WARNING),
    "task_created": ("New Task Assigned", NotificationType.SUCCESS),
    "task_updated": ("Task Updated", NotificationType.INFO),
    "task_deleted": ("Task Deleted", NotificationType.WARNING),
    "task_deadline": ("Task Deadline Reminder", NotificationType.WARNING),
    "experiment_created": ("New Experiment Created", NotificationType.SUCCESS),
    "experiment_updated": ("Experiment Updated", NotificationType.INFO),
    "experiment_deleted": ("Experiment Deleted", NotificationType.WARNING),
    "inventory_added": ("New Inventory Added", NotificationType.SUCCESS),
    "inventory_updated": ("Inventory Updated", NotificationType.INFO),
    "inventory_low": ("Low Inventory Alert", NotificationType.WARNING),
    "compliance_updated": ("Compliance Status Changed", NotificationType.WARNING),
    "user_created": ("New User Registered", NotificationType.SUCCESS),
    "user_updated": ("User Profile Updated", NotificationType.INFO),
    "user_deleted": ("User Account Deleted", NotificationType.WARNING),
    "user_login": ("Login Activity", NotificationType.INFO),
    "failed_login_attempt": ("Failed Login Attempt", NotificationType.ERROR),
    "notification_created": ("New Notification", NotificationType.INFO),
    "notification_read": ("Notification Read", NotificationType.INFO),
    "notifications_all_read": ("All Notifications Read", NotificationType.INFO),
    "notification_deleted": ("Notification Deleted", NotificationType.WARNING),
    "notifications_all_deleted": ("All Notifications Deleted", NotificationType.INFO),
    "notifications_bulk_sent": ("Bulk Notifications Sent", NotificationType.INFO),
}

# Activity categories that are not notification categories
CATEGORY_ALIASES = {
    "authentication": NotificationCategory.SYSTEM,
    "user_management": NotificationCategory.USER,
    "notification": NotificationCategory.SYSTEM,
}


def notification_title(activity_type: str) -> str:
    return ACTIVITY_NOTIFICATIONS.get(activity_type, (DEFAULT_TITLE, None))[0]


def notification_type(activity_type: str) -> NotificationType:
    return ACTIVITY_NOTIFICATIONS.get(activity_type, (None, NotificationType.INFO))[1]


def normalise_category(value: Optional[str]) -> NotificationCategory:
    """Map ``activity.meta["category"]`` onto a notification category."""
    if value is None:
        return NotificationCategory.GENERAL
    try:
        return NotificationCategory(value)
    except ValueError:
        return CATEGORY_ALIASES.get(value, NotificationCategory.GENERAL)


@dataclass
class GenerationResult:
    activities_scanned: int = 0
    skipped: int = 0
    failed: int = 0
    notifications: List[Notification] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.notifications)

    @property
    def message(self) -> str:
        return f"Generated {self.count} notifications from {self.activities_scanned} activities"


def build_notification(activity: Dict[str, Any]) -> Dict[str, Any]:
    """Notification record for one activity snapshot."""
    meta = activity["meta"] or {}
    return {
        "title": notification_title(activity["type"]),
        "message": activity["description"],
        "type": notification_type(activity["type"]),
        "category": normalise_category(meta.get("category")),
        "recipient_id": activity["user_id"],
        "metadata_payload": {
            "activityId": activity["id"],
            "activityType": activity["type"],
        },
    }


async def _existing_user_ids(db: AsyncSession, user_ids) -> set:
    if not user_ids:
        return set()
    result = await db.execute(select(User.id).where(User.id.in_(sorted(user_ids))))
    return set(result.scalars().all())


async def _generate(
    db: AsyncSession,
    since: datetime,
    continue_on_error: bool,
    lock=None
) -> GenerationResult:
    activities = await list_activities_since(db, since)
    # Plain snapshots: a rollback below expires every ORM instance in the session
    snapshots = [
        {
            "id": a.id,
            "type": a.type,
            "description": a.description,
            "user_id": a.user_id,
            "meta": a.meta,
        }
        for a in activities
    ]
    known_users = await _existing_user_ids(db, {s["user_id"] for s in snapshots if s["user_id"] is not None})

    result = GenerationResult(activities_scanned=len(snapshots))
    created_ids = []

    for activity in snapshots:
        if activity["user_id"] is None or activity["user_id"] not in known_users:
            logger.debug("Skipping activity %s: no recipient", activity["id"])
            result.skipped += 1
            continue

        if await NotificationStore.find_by_activity_id(db, activity["id"]) is not None:
            result.skipped += 1
            continue

        try:
            notification = await NotificationStore.insert(db, build_notification(activity))
            await db.commit()
        except (SQLAlchemyError, AppException) as exc:
            await db.rollback()
            if not continue_on_error:
                logger.error("Aborting generation at activity %s: %s", activity["id"], exc)
                raise InternalError(
                    f"Failed to generate notification for activity {activity['id']}"
                ) from exc
            logger.exception("Failed to generate notification for activity %s", activity["id"])
            result.failed += 1
            continue

        created_ids.append(notification.id)
        await refresh_lock(lock)

    result.notifications = await NotificationStore.reload(db, created_ids)
    return result


async def generate_notifications_from_activities(
    db: AsyncSession,
    redis_client=None,
    window_hours: Optional[int] = None,
    continue_on_error: Optional[bool] = None,
    now: Optional[datetime] = None
) -> GenerationResult:
    """
    Create notifications for activities in the last ``window_hours``.

    Args:
        db: Database session
        redis_client: Client used for the run lock; None runs unlocked
        window_hours: Look-back window, defaults to ``settings.activity_window_hours``
        continue_on_error: Skip failing activities instead of aborting,
            defaults to ``settings.generator_continue_on_error``
        now: Reference time for the window

    Returns:
        GenerationResult with the notifications created by this run

    Raises:
        GenerationInProgressError: Another run holds the lock
        InternalError: An activity failed and continue_on_error is off
    """
    window_hours = settings.activity_window_hours if window_hours is None else window_hours
    continue_on_error = settings.generator_continue_on_error if continue_on_error is None else continue_on_error
    since = (now or utc_now()) - timedelta(hours=window_hours)

    if redis_client is None:
        result = await _generate(db, since, continue_on_error)
    else:
        try:
            async with run_lock(redis_client, GENERATOR_LOCK_NAME, settings.generator_lock_ttl_seconds) as lock:
                result = await _generate(db, since, continue_on_error, lock)
        except LockNotAcquired:
            raise GenerationInProgressError() from None

    logger.info(
        "Generated %d notifications from %d activities (%d skipped, %d failed)",
        result.count, result.activities_scanned, result.skipped, result.failed
    )
    return result
