"""
Push Notifications
==================
User notifications, their creation event and the push delivery pipeline.
"""

from .models import (
    Notification,
    NotificationPriority,
    NotificationStatus,
    NotificationTimeFilter,
    NotificationType,
    PushProfile,
)
from .events import DomainEvent, EventBus, NotificationCreatedEvent
from .stores import (
    InMemoryNotificationStore,
    InMemoryUserDirectory,
    NotificationStore,
    UserDirectory,
)
from .sender import PushNotificationSender, build_push_data
from .pipeline import NotificationCreatedHandler
from .service import NotificationNotFoundError, NotificationService

__all__ = [
    # Models
    "Notification",
    "NotificationPriority",
    "NotificationStatus",
    "NotificationTimeFilter",
    "NotificationType",
    "PushProfile",
    # Events
    "DomainEvent",
    "EventBus",
    "NotificationCreatedEvent",
    # Stores
    "NotificationStore",
    "UserDirectory",
    "InMemoryNotificationStore",
    "InMemoryUserDirectory",
    # Delivery
    "PushNotificationSender",
    "build_push_data",
    "NotificationCreatedHandler",
    # Service
    "NotificationService",
    "NotificationNotFoundError",
]
