"""
Push Notification Models
========================
In-app notifications addressed to a user and delivered by push.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from smsly_messaging.errors import MessageValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationType(str, Enum):
    GENERAL = "general"
    SYSTEM = "system"
    ALERT = "alert"
    REMINDER = "reminder"
    PROMOTION = "promotion"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, Enum):
    """Push delivery status. Sent and Failed are terminal."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationTimeFilter(str, Enum):
    """Creation-day buckets for listing."""
    ALL = "all"
    TODAY = "today"
    YESTERDAY = "yesterday"
    EARLIER = "earlier"


@dataclass
class Notification:
    """A push-worthy event addressed to a user."""
    user_id: str
    title: str
    body: str
    type: NotificationType = NotificationType.GENERAL
    priority: NotificationPriority = NotificationPriority.NORMAL
    title_ar: str = ""
    body_ar: str = ""
    action_url: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: NotificationStatus = NotificationStatus.PENDING
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    is_deleted: bool = False

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise MessageValidationError("Title cannot be empty", field="title")
        if not self.body or not self.body.strip():
            raise MessageValidationError("Body cannot be empty", field="body")
        if not self.user_id or not str(self.user_id).strip():
            raise MessageValidationError("User ID cannot be empty", field="user_id")
        self.user_id = str(self.user_id)
        self.title_ar = self.title_ar or ""
        self.body_ar = self.body_ar or ""

    def mark_read(self, now: Optional[datetime] = None) -> bool:
        if self.is_read:
            return False
        now = now or utcnow()
        self.is_read = True
        self.read_at = now
        self.updated_at = now
        return True

    def mark_unread(self, now: Optional[datetime] = None) -> bool:
        if not self.is_read:
            return False
        self.is_read = False
        self.read_at = None
        self.updated_at = now or utcnow()
        return True

    def update_status(self, status: NotificationStatus, now: Optional[datetime] = None) -> bool:
        """Leave Pending for a terminal status. Returns False once terminal."""
        if self.status is not NotificationStatus.PENDING or status is NotificationStatus.PENDING:
            return False
        self.status = status
        self.updated_at = now or utcnow()
        return True

    def localized(self, language: Optional[str]):
        """Title and body for a language. Arabic falls back to the default pair."""
        if (language or "").lower() == "ar":
            return self.title_ar or self.title, self.body_ar or self.body
        return self.title, self.body


@dataclass
class PushProfile:
    """A user's push address and language preference."""
    user_id: str
    push_token: Optional[str] = None
    language: str = "en"
