from typing import Optional
from datetime import datetime
from enum import Enum
from sqlmodel import Field, SQLModel

class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    RESERVATION = "reservation"

class NotificationKind(str, Enum):
    """What ``related_id`` points at, so clients can navigate without parsing text."""
    RESERVATION = "reservation"
    PRODUCT = "product"
    USER = "user"
    GENERIC = "generic"

class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # Recipient
    user_profile_id: int = Field(foreign_key="profile.id", index=True)

    # Content
    title: str
    message: str
    type: NotificationType = Field(default=NotificationType.INFO)

    # Navigation target
    kind: NotificationKind = Field(default=NotificationKind.GENERIC)
    related_id: Optional[int] = None

    is_read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
