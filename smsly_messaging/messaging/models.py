"""
Messaging Models
================
Message and OTP records owned by the messaging manager.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from smsly_messaging.errors import MessageValidationError
from .phone_utils import normalize_phone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageChannel(str, Enum):
    """Outbound messaging channels."""
    SMS = "sms"
    WHATSAPP = "whatsapp"


class MessageStatus(str, Enum):
    """Canonical delivery lifecycle of a message."""
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self is MessageStatus.FAILED


_STATUS_RANK = {
    MessageStatus.QUEUED: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.FAILED: 3,
}


@dataclass
class Message:
    """One outbound SMS or WhatsApp send."""
    recipient_phone_number: str
    channel: MessageChannel
    body: str = ""
    template_id: Optional[str] = None
    template_variables: Optional[str] = None  # JSON
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: MessageStatus = MessageStatus.QUEUED
    message_sid: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    fallback_message_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    is_deleted: bool = False

    def __post_init__(self):
        if not self.recipient_phone_number or not self.recipient_phone_number.strip():
            raise MessageValidationError(
                "Recipient phone number cannot be empty", field="recipient_phone_number"
            )
        if not (self.body and self.body.strip()) and not (self.template_id and self.template_id.strip()):
            raise MessageValidationError("Message body or template ID must be provided", field="body")
        self.recipient_phone_number = normalize_phone(self.recipient_phone_number)
        self.body = self.body or ""

    def _touch(self, now: datetime) -> None:
        self.updated_at = now

    def mark_sent(self, message_sid: str, now: Optional[datetime] = None) -> None:
        """Record provider acceptance. The correlation id is set only once."""
        if not message_sid or not message_sid.strip():
            raise MessageValidationError("Message SID cannot be empty", field="message_sid")
        now = now or utcnow()
        if self.message_sid is None:
            self.message_sid = message_sid
        if self.status is MessageStatus.QUEUED:
            self.status = MessageStatus.SENT
        if self.sent_at is None:
            self.sent_at = now
        self._touch(now)

    def mark_delivered(self, now: Optional[datetime] = None) -> None:
        self.apply_status(MessageStatus.DELIVERED, now=now)

    def mark_failed(self, reason: str, now: Optional[datetime] = None) -> None:
        if not reason or not reason.strip():
            raise MessageValidationError("Failure reason cannot be empty", field="failure_reason")
        self.apply_status(MessageStatus.FAILED, failure_reason=reason, now=now)

    def can_transition_to(self, status: MessageStatus) -> bool:
        """
        Whether applying ``status`` moves the lifecycle forward.

        Queued < Sent < Delivered; Failed is reachable from any state and is
        terminal. Replays and stale statuses are rejected.
        """
        if self.status is MessageStatus.FAILED:
            return False
        if status is MessageStatus.FAILED:
            return True
        return status.rank > self.status.rank

    def apply_status(
        self,
        status: MessageStatus,
        failure_reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Apply a status idempotently. Returns True if state changed.
        """
        now = now or utcnow()
        if not self.can_transition_to(status):
            # A late failure reason is still worth keeping
            if status is MessageStatus.FAILED and failure_reason and not self.failure_reason:
                self.failure_reason = failure_reason
                self._touch(now)
                return True
            return False

        self.status = status
        if status is MessageStatus.SENT and self.sent_at is None:
            self.sent_at = now
        elif status is MessageStatus.DELIVERED:
            if self.sent_at is None:
                self.sent_at = now
            if self.delivered_at is None:
                self.delivered_at = now
        elif status is MessageStatus.FAILED:
            if self.failed_at is None:
                self.failed_at = now
            if failure_reason:
                self.failure_reason = failure_reason
        self._touch(now)
        return True


@dataclass
class Otp:
    """One-time password challenge for a phone number."""
    phone_number: str
    code: str
    expires_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_used: bool = False
    used_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    is_deleted: bool = False

    def __post_init__(self):
        if not self.phone_number or not self.phone_number.strip():
            raise MessageValidationError("Phone number cannot be empty", field="phone_number")
        if not self.code or not self.code.strip():
            raise MessageValidationError("OTP code cannot be empty", field="code")
        self.phone_number = normalize_phone(self.phone_number)

    @classmethod
    def issue(
        cls,
        phone_number: str,
        code: str,
        expiration_minutes: int = 5,
        now: Optional[datetime] = None,
    ) -> "Otp":
        now = now or utcnow()
        return cls(
            phone_number=phone_number,
            code=code,
            expires_at=now + timedelta(minutes=expiration_minutes),
            created_at=now,
        )

    def is_expired_at(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_valid_at(self, now: datetime) -> bool:
        return not self.is_used and not self.is_expired_at(now)

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(utcnow())

    @property
    def is_valid(self) -> bool:
        return self.is_valid_at(utcnow())

    def mark_used(self, now: Optional[datetime] = None) -> bool:
        """Consume the challenge. Returns False if it was already used."""
        if self.is_used:
            return False
        self.is_used = True
        self.used_at = now or utcnow()
        return True
