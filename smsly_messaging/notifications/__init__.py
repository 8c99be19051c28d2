"""
Notifications
=============
Multi-channel dispatch: strategies, their factory and the orchestrator.
"""

from .models import (
    NotificationChannel,
    NotificationRequest,
    NotificationResult,
    SendNotificationRequest,
)
from .strategies import (
    AllNotificationStrategy,
    EmailNotificationStrategy,
    FirebaseNotificationStrategy,
    NotificationStrategy,
    TwilioSmsNotificationStrategy,
    TwilioWhatsAppNotificationStrategy,
    render_email_html,
)
from .factory import NotificationStrategyFactory
from .orchestrator import NotificationOrchestrator

__all__ = [
    "NotificationChannel",
    "NotificationRequest",
    "NotificationResult",
    "SendNotificationRequest",
    "NotificationStrategy",
    "EmailNotificationStrategy",
    "FirebaseNotificationStrategy",
    "TwilioSmsNotificationStrategy",
    "TwilioWhatsAppNotificationStrategy",
    "AllNotificationStrategy",
    "render_email_html",
    "NotificationStrategyFactory",
    "NotificationOrchestrator",
]
