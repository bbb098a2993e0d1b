"""
Notification-related enumerations.
"""

import enum


class NotificationType(str, enum.Enum):
    """Severity shown by the client; no business logic depends on it."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SYSTEM = "system"


class NotificationPriority(str, enum.Enum):
    """Notification priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationCategory(str, enum.Enum):
    """Area of the lab application a notification belongs to."""
    TASK = "task"
    PROJECT = "project"
    EXPERIMENT = "experiment"
    INVENTORY = "inventory"
    SYSTEM = "system"
    USER = "user"
    GENERAL = "general"


class RelatedEntityType(str, enum.Enum):
    """Kinds of record a notification may point back to."""
    TASK = "Task"
    PROJECT = "Project"
    EXPERIMENT = "Experiment"
    INVENTORY_ITEM = "InventoryItem"
    USER = "User"
    ORDER = "Order"


def enum_values(enum_cls):
    """Persist enum values (``"info"``) rather than member names (``"INFO"``)."""
    return [member.value for member in enum_cls]
