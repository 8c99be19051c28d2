"""
SMSLY Messaging Library
=======================
Multi-channel notification and message delivery: SMS, WhatsApp, push and
email dispatch, delivery-status reconciliation and OTP challenges.
"""

__version__ = "0.1.0"

# Configuration
from smsly_messaging.config import (
    DatabaseConfig,
    FirebaseConfig,
    MessagingConfig,
    TwilioConfig,
    WebhookConfig,
)

# Errors
from smsly_messaging.errors import (
    ConfigurationError,
    MessageValidationError,
    MessagingError,
    ProviderError,
    StrategyNotRegisteredError,
)

# Logging
from smsly_messaging.logging import setup_logging, log_event, mask_phone

# Providers
from smsly_messaging.providers import (
    BaseProviderAdapter,
    EmailProvider,
    PushProvider,
    SendResult,
    TwilioAdapter,
)

# Messaging
from smsly_messaging.messaging import (
    Message,
    MessageChannel,
    MessageStatus,
    MessagingManager,
    Otp,
)

# Notifications
from smsly_messaging.notifications import (
    NotificationChannel,
    NotificationOrchestrator,
    NotificationRequest,
    NotificationResult,
    NotificationStrategyFactory,
    SendNotificationRequest,
)

# Push
from smsly_messaging.push import (
    EventBus,
    Notification,
    NotificationCreatedEvent,
    NotificationCreatedHandler,
    NotificationService,
    PushNotificationSender,
)

# Webhooks
from smsly_messaging.webhooks import create_twilio_webhook_router

__all__ = [
    "__version__",
    # Configuration
    "DatabaseConfig",
    "FirebaseConfig",
    "MessagingConfig",
    "TwilioConfig",
    "WebhookConfig",
    # Errors
    "ConfigurationError",
    "MessageValidationError",
    "MessagingError",
    "ProviderError",
    "StrategyNotRegisteredError",
    # Logging
    "setup_logging",
    "log_event",
    "mask_phone",
    # Providers
    "BaseProviderAdapter",
    "EmailProvider",
    "PushProvider",
    "SendResult",
    "TwilioAdapter",
    # Messaging
    "Message",
    "MessageChannel",
    "MessageStatus",
    "MessagingManager",
    "Otp",
    # Notifications
    "NotificationChannel",
    "NotificationOrchestrator",
    "NotificationRequest",
    "NotificationResult",
    "NotificationStrategyFactory",
    "SendNotificationRequest",
    # Push
    "EventBus",
    "Notification",
    "NotificationCreatedEvent",
    "NotificationCreatedHandler",
    "NotificationService",
    "PushNotificationSender",
    # Webhooks
    "create_twilio_webhook_router",
]
