"""
Notification Database Model.

In-app notifications addressed to a single recipient.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum, Index
from sqlalchemy.orm import relationship

from backend.app.core.timeutils import utc_now
from backend.app.db.session import Base
from backend.app.models.notification_enums import (
    NotificationType,
    NotificationPriority,
    NotificationCategory,
    RelatedEntityType,
    enum_values,
)


class Notification(Base):
    """
    In-App Notification.

    Invariants:
    - ``recipient_id`` never changes after insert.
    - ``is_read`` and ``read_at`` move together, false/None -> true/timestamp, once.
    - Rows past ``expires_at`` are invisible to queries and purged by the TTL sweeper.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(
        Enum(NotificationType, name="notification_type", values_callable=enum_values),
        default=NotificationType.INFO,
        nullable=False,
    )
    priority = Column(
        Enum(NotificationPriority, name="notification_priority", values_callable=enum_values),
        default=NotificationPriority.MEDIUM,
        nullable=False,
    )
    category = Column(
        Enum(NotificationCategory, name="notification_category", values_callable=enum_values),
        default=NotificationCategory.GENERAL,
        nullable=False,
    )

    # Addressing
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    # Polymorphic back-reference: both columns set, or neither
    related_entity_type = Column(
        Enum(RelatedEntityType, name="related_entity_type", values_callable=enum_values),
        nullable=True,
    )
    related_entity_id = Column(Integer, nullable=True)

    action_url = Column(String(500), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # "metadata" is reserved on declarative classes
    metadata_payload = Column("metadata", JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    recipient = relationship("User", foreign_keys=[recipient_id], lazy="selectin")
    sender = relationship("User", foreign_keys=[sender_id], lazy="selectin")

    @property
    def related_entity(self):
        if self.related_entity_type is None or self.related_entity_id is None:
            return None
        return {"entity_type": self.related_entity_type, "entity_id": self.related_entity_id}

    def __repr__(self):
        return f"<Notification(id={self.id}, recipient={self.recipient_id}, title='{self.title}', read={self.is_read})>"


# List / unread-count path: recipient + read state, newest first
Index(
    "ix_notifications_recipient_read_created",
    Notification.recipient_id,
    Notification.is_read,
    Notification.created_at.desc(),
)
