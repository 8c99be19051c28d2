"""
SMSLY Provider Adapters
========================
Adapters for messaging, push and email providers.
"""

from .base import (
    BaseProviderAdapter,
    EmailProvider,
    ProviderStatus,
    PushProvider,
    SendResult,
    WebhookEvent,
)
from .twilio import TwilioAdapter, compute_twilio_signature, map_twilio_status

__all__ = [
    "BaseProviderAdapter",
    "EmailProvider",
    "ProviderStatus",
    "PushProvider",
    "SendResult",
    "WebhookEvent",
    "TwilioAdapter",
    "compute_twilio_signature",
    "map_twilio_status",
]
