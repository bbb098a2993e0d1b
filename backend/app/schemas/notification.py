"""
Notification Schemas.

Request and response models for the notification API. The wire format is
camelCase (``isRead``, ``actionUrl``); Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from backend.app.core.timeutils import ensure_utc
from backend.app.models.notification_enums import (
    NotificationType,
    NotificationPriority,
    NotificationCategory,
    RelatedEntityType,
)


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases and reading ORM attributes."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserSummary(CamelModel):
    """Display projection of a referenced user."""
    id: int
    name: str
    email: str


class SenderName(CamelModel):
    id: int
    name: str


class RelatedEntity(CamelModel):
    """Tagged back-reference to the record a notification is about."""
    entity_type: RelatedEntityType
    entity_id: int


class NotificationMetadata(CamelModel):
    """
    Structured metadata.

    ``activityId`` is the generator's dedup key. Unknown keys are kept so
    other producers can attach their own context.
    """
    model_config = ConfigDict(extra="allow")

    activity_id: Optional[int] = None
    activity_type: Optional[str] = None


class NotificationCreate(CamelModel):
    """Schema for creating a single notification."""
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    recipient: int = Field(..., description="Recipient user ID")
    sender: Optional[int] = Field(None, description="Sender user ID")
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.MEDIUM
    category: NotificationCategory = NotificationCategory.GENERAL
    related_entity: Optional[RelatedEntity] = None
    action_url: Optional[str] = Field(None, max_length=500)
    expires_at: Optional[datetime] = None
    metadata: Optional[NotificationMetadata] = None

    @field_validator("expires_at")
    @classmethod
    def _expires_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def to_record(self) -> Dict[str, Any]:
        """Flatten into store column names."""
        record: Dict[str, Any] = {
            "title": self.title,
            "message": self.message,
            "recipient_id": self.recipient,
            "sender_id": self.sender,
            "type": self.type,
            "priority": self.priority,
            "category": self.category,
            "action_url": self.action_url,
            "expires_at": self.expires_at,
            "metadata_payload": self.metadata.model_dump(by_alias=True, exclude_none=True) if self.metadata else None,
        }
        if self.related_entity is not None:
            record["related_entity_type"] = self.related_entity.entity_type
            record["related_entity_id"] = self.related_entity.entity_id
        return record


class BulkNotificationRequest(CamelModel):
    """
    One notification per recipient, sharing content.

    ``recipients`` is checked by the service: a missing or empty list
    is a ValidationError, not a schema error.
    """
    recipients: Optional[List[int]] = None
    title: Optional[str] = None
    message: Optional[str] = None
    type: Optional[NotificationType] = None
    category: Optional[NotificationCategory] = None
    action_url: Optional[str] = Field(None, max_length=500)


class NotificationResponse(CamelModel):
    """Schema for notification response with expanded user references."""
    id: int
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    category: NotificationCategory
    recipient: Optional[UserSummary]
    sender: Optional[UserSummary] = None
    is_read: bool
    read_at: Optional[datetime] = None
    related_entity: Optional[RelatedEntity] = None
    action_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = Field(
        None,
        validation_alias=AliasChoices("metadata_payload", "metadata"),
        serialization_alias="metadata",
    )
    created_at: datetime
    updated_at: datetime


class NotificationListResponse(CamelModel):
    """Schema for paginated notification list."""
    notifications: List[NotificationResponse]
    total_pages: int
    current_page: int
    total: int
    unread_count: int


class BulkNotificationResponse(CamelModel):
    message: str
    notifications: List[NotificationResponse]


class MessageResponse(CamelModel):
    message: str


class MarkAllReadResponse(MessageResponse):
    modified_count: int


class DeleteAllResponse(MessageResponse):
    deleted_count: int


class UnreadCountResponse(CamelModel):
    unread_count: int


class GroupCount(BaseModel):
    """One row of a ``GROUP BY value ORDER BY count DESC`` breakdown."""
    model_config = ConfigDict(populate_by_name=True)

    value: str = Field(..., alias="_id")
    count: int


class RecentNotification(CamelModel):
    """Stats preview item; sender reduced to its name."""
    id: int
    title: str
    message: str
    type: NotificationType
    category: NotificationCategory
    is_read: bool
    sender: Optional[SenderName] = None
    created_at: datetime


class NotificationStatsResponse(CamelModel):
    total_notifications: int
    unread_notifications: int
    read_notifications: int
    type_stats: List[GroupCount]
    category_stats: List[GroupCount]
    recent_notifications: List[RecentNotification]


class GenerationResponse(CamelModel):
    """Result of one activity-to-notification run."""
    message: str
    count: int
    notifications: List[NotificationResponse]

