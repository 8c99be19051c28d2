"""
Notification Models
===================
Channel enum, dispatch request and per-channel result.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationChannel(str, Enum):
    """Delivery channels a notification can be dispatched on."""
    EMAIL = "email"
    FIREBASE = "firebase"
    TWILIO_SMS = "twilio_sms"
    TWILIO_WHATSAPP = "twilio_whatsapp"
    ALL = "all"  # every configured concrete channel


@dataclass
class NotificationRequest:
    """
    One notification to dispatch on a set of channels.

    ``recipient`` is the default address for every channel. ``recipients``
    overrides it per channel, e.g. an email address for EMAIL and a push
    token for FIREBASE alongside a phone number for the Twilio channels.
    """
    recipient: str
    subject: str
    body: str
    channels: List[NotificationChannel] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    recipients: Dict[NotificationChannel, str] = field(default_factory=dict)

    def recipient_for(self, channel: NotificationChannel) -> str:
        return self.recipients.get(channel) or self.recipient


@dataclass
class NotificationResult:
    """Outcome of a send on one channel."""
    channel: NotificationChannel
    success: bool
    error_message: Optional[str] = None
    external_reference: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @classmethod
    def successful(
        cls,
        channel: NotificationChannel,
        external_reference: Optional[str] = None,
    ) -> "NotificationResult":
        return cls(channel=channel, success=True, external_reference=external_reference)

    @classmethod
    def failed(cls, channel: NotificationChannel, error_message: str) -> "NotificationResult":
        return cls(channel=channel, success=False, error_message=error_message)


class SendNotificationRequest(BaseModel):
    """Validated inbound shape of a notification dispatch."""

    model_config = ConfigDict(str_strip_whitespace=True)

    recipient: str = Field(min_length=1, max_length=500)
    subject: str = Field(min_length=1, max_length=500)
    body: str = Field(min_length=1, max_length=10000)
    channels: List[NotificationChannel] = Field(min_length=1)
    metadata: Dict[str, str] = Field(default_factory=dict)
    recipients: Dict[NotificationChannel, str] = Field(default_factory=dict)

    def to_request(self) -> NotificationRequest:
        return NotificationRequest(
            recipient=self.recipient,
            subject=self.subject,
            body=self.body,
            channels=list(self.channels),
            metadata=dict(self.metadata),
            recipients=dict(self.recipients),
        )
