"""
Notification Store.

Persistence primitives for notifications. Methods flush but never commit;
the calling service owns the transaction.

Expired rows (``expires_at`` in the past) are filtered out of every read
and physically removed by ``purge_expired``.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ValidationError
from backend.app.core.timeutils import utc_now, ensure_utc
from backend.app.models.notification import Notification
from backend.app.models.notification_enums import (
    NotificationType,
    NotificationPriority,
    NotificationCategory,
    RelatedEntityType,
    enum_values,
)
from backend.app.models.user import User


REQUIRED_FIELDS = ("title", "message", "recipient_id")
FILTER_FIELDS = ("recipient_id", "is_read", "type", "category")

WRITABLE_FIELDS = frozenset({
    "title", "message", "type", "priority", "category",
    "recipient_id", "sender_id", "is_read", "read_at",
    "related_entity_type", "related_entity_id",
    "action_url", "expires_at", "metadata_payload",
})

ENUM_FIELDS = {
    "type": NotificationType,
    "priority": NotificationPriority,
    "category": NotificationCategory,
    "related_entity_type": RelatedEntityType,
}


def _not_expired(now: Optional[datetime] = None):
    now = now or utc_now()
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now)


def _filter_clauses(filters: Dict[str, Any]) -> list:
    clauses = []
    for name in FILTER_FIELDS:
        value = filters.get(name)
        if value is not None:
            clauses.append(getattr(Notification, name) == value)
    return clauses


def _coerce_fields(record: Dict[str, Any]) -> Dict[str, Any]:
    """Reject unknown keys and coerce enum values (``"info"`` -> NotificationType.INFO)."""
    unknown = set(record) - WRITABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown notification fields: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)}
        )

    for name, enum_cls in ENUM_FIELDS.items():
        value = record.get(name)
        if value is None:
            continue
        try:
            record[name] = enum_cls(value)
        except ValueError:
            raise ValidationError(
                f"`{value}` is not a valid value for {name}",
                details={"field": name, "allowed": enum_values(enum_cls)}
            ) from None

    for name in ("title", "message"):
        if name in record and (not isinstance(record[name], str) or not record[name].strip()):
            raise ValidationError(f"{name} must be a non-empty string", details={"field": name})

    if "expires_at" in record:
        record["expires_at"] = ensure_utc(record["expires_at"])
    return record


class NotificationStore:

    @staticmethod
    def validate(data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate one record for insertion.

        None values are dropped so column defaults apply. Returns a new dict
        with enum fields coerced and the read-state pair made consistent.
        """
        record = {key: value for key, value in data.items() if value is not None}

        missing = [name for name in REQUIRED_FIELDS if record.get(name) in (None, "")]
        if missing:
            raise ValidationError(
                f"Notification validation failed: {', '.join(missing)} required",
                details={"missing": missing}
            )

        for name in ("recipient_id", "sender_id"):
            value = record.get(name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValidationError(f"{name} must be a user ID", details={"field": name})

        record = _coerce_fields(record)

        if ("related_entity_type" in record) != ("related_entity_id" in record):
            raise ValidationError("relatedEntity requires both entityType and entityId")

        if record.get("is_read"):
            record["read_at"] = ensure_utc(record.get("read_at")) or utc_now()
        else:
            record.pop("read_at", None)
        return record

    @staticmethod
    async def _ensure_users_exist(db: AsyncSession, records: Sequence[Dict[str, Any]]) -> None:
        user_ids = set()
        for record in records:
            user_ids.add(record["recipient_id"])
            if record.get("sender_id") is not None:
                user_ids.add(record["sender_id"])

        result = await db.execute(select(User.id).where(User.id.in_(sorted(user_ids))))
        unknown = user_ids - set(result.scalars().all())
        if unknown:
            raise ValidationError(
                f"Unknown user IDs: {', '.join(str(uid) for uid in sorted(unknown))}",
                details={"user_ids": sorted(unknown)}
            )

    @staticmethod
    async def insert(db: AsyncSession, data: Dict[str, Any]) -> Notification:
        """Validate and insert one notification."""
        record = NotificationStore.validate(data)
        await NotificationStore._ensure_users_exist(db, [record])

        notification = Notification(**record)
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def insert_many(db: AsyncSession, items: Iterable[Dict[str, Any]]) -> List[Notification]:
        """
        Insert a batch, all-or-nothing.

        Every record is validated before any row is added, so a bad record
        leaves the session untouched.
        """
        records = [NotificationStore.validate(item) for item in items]
        if not records:
            return []
        await NotificationStore._ensure_users_exist(db, records)

        notifications = [Notification(**record) for record in records]
        db.add_all(notifications)
        await db.flush()
        return notifications

    @staticmethod
    async def find_by_id(db: AsyncSession, notification_id: int) -> Optional[Notification]:
        result = await db.execute(
            select(Notification).where(Notification.id == notification_id, _not_expired())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find(
        db: AsyncSession,
        filters: Dict[str, Any],
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Notification]:
        """Page of notifications, newest first."""
        query = (
            select(Notification)
            .where(*_filter_clauses(filters), _not_expired())
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
        )
        if limit is not None:
            query = query.limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def reload(db: AsyncSession, notification_ids: Sequence[int]) -> List[Notification]:
        """Re-read rows (with sender/recipient) after a commit, in ID order."""
        if not notification_ids:
            return []
        result = await db.execute(
            select(Notification)
            .where(Notification.id.in_(notification_ids))
            .order_by(Notification.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession, filters: Dict[str, Any]) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(*_filter_clauses(filters), _not_expired())
        )
        return result.scalar_one()

    @staticmethod
    async def find_by_activity_id(db: AsyncSession, activity_id: int) -> Optional[Notification]:
        """Notification generated from ``activity_id`` (the dedup key), if any."""
        result = await db.execute(
            select(Notification)
            .where(Notification.metadata_payload["activityId"].as_integer() == activity_id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def update_by_id(db: AsyncSession, notification_id: int, patch: Dict[str, Any]) -> Optional[Notification]:
        """
        Overwrite fields of one notification.

        The recipient cannot change, and read state only moves forward:
        ``is_read=True`` stamps ``read_at`` once, ``is_read=False`` on a read
        notification is rejected.
        """
        if "recipient_id" in patch:
            raise ValidationError("recipient cannot be changed after creation")
        if "read_at" in patch:
            raise ValidationError("readAt is set by marking the notification as read")

        changes = _coerce_fields(dict(patch))

        notification = await NotificationStore.find_by_id(db, notification_id)
        if notification is None:
            return None

        if "is_read" in changes:
            is_read = bool(changes.pop("is_read"))
            if not is_read and notification.is_read:
                raise ValidationError("Read notifications cannot be marked unread")
            if is_read and not notification.is_read:
                notification.is_read = True
                notification.read_at = utc_now()

        for name, value in changes.items():
            if name in REQUIRED_FIELDS and value is None:
                raise ValidationError(f"{name} cannot be cleared")
            setattr(notification, name, value)

        await db.flush()
        return notification

    @staticmethod
    async def mark_read(db: AsyncSession, notification: Notification) -> bool:
        """
        Set ``is_read``/``read_at`` together in one conditional UPDATE.

        Returns False when the notification was already read; its original
        ``read_at`` is kept.
        """
        result = await db.execute(
            update(Notification)
            .where(Notification.id == notification.id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utc_now())
        )
        await db.refresh(notification, attribute_names=["is_read", "read_at", "updated_at"])
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, recipient_id: int) -> int:
        """Mark every unread, unexpired notification of a recipient as read in one batch."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
                _not_expired()
            )
            .values(is_read=True, read_at=utc_now())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    @staticmethod
    async def delete_by_id(db: AsyncSession, notification_id: int) -> Optional[Notification]:
        """Delete one notification; returns the deleted row or None."""
        notification = await NotificationStore.find_by_id(db, notification_id)
        if notification is None:
            return None
        await db.delete(notification)
        await db.flush()
        return notification

    @staticmethod
    async def delete_many(db: AsyncSession, filters: Dict[str, Any]) -> int:
        clauses = _filter_clauses(filters)
        if not clauses:
            raise ValidationError("Refusing to delete notifications without a filter")
        result = await db.execute(delete(Notification).where(*clauses))
        return result.rowcount

    @staticmethod
    async def group_counts(db: AsyncSession, recipient_id: int, column) -> List[Tuple[str, int]]:
        """``GROUP BY column ORDER BY COUNT(*) DESC`` for one recipient."""
        count_col = func.count(Notification.id).label("count")
        result = await db.execute(
            select(column, count_col)
            .where(Notification.recipient_id == recipient_id, _not_expired())
            .group_by(column)
            .order_by(count_col.desc(), column)
        )
        return [(getattr(value, "value", value), count) for value, count in result.all()]

    @staticmethod
    async def purge_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """Physically delete notifications whose ``expires_at`` has passed."""
        now = now or utc_now()
        result = await db.execute(
            delete(Notification)
            .where(
                Notification.expires_at.is_not(None),
                Notification.expires_at <= now
            )
            # In-session rows may hold naive timestamps read back from SQLite
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
