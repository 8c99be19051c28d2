"""
Notification Service
====================
Creates notifications, publishes their creation event, and serves the
user-facing read operations.
"""

from datetime import datetime
from typing import Callable, List, Optional, Tuple

import structlog

from smsly_messaging.errors import MessageValidationError, MessagingError

from .events import EventBus, NotificationCreatedEvent
from .models import (
    Notification,
    NotificationPriority,
    NotificationTimeFilter,
    NotificationType,
    utcnow,
)
from .stores import NotificationStore, UserDirectory

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


class NotificationNotFoundError(MessagingError):
    """Raised when a notification id does not resolve."""

    def __init__(self, notification_id: str):
        self.notification_id = notification_id
        super().__init__(f"Notification with ID {notification_id} not found")


class NotificationService:
    """
    User notifications.

    Usage:
        service = NotificationService(store, bus)
        notification = await service.create(
            user_id, title="Booking confirmed", body="See you at 10:00",
            title_ar="...", body_ar="...",
        )
        page, has_more = await service.list(user_id, page_size=20)
    """

    def __init__(
        self,
        notifications: NotificationStore,
        bus: EventBus,
        users: Optional[UserDirectory] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.notifications = notifications
        self.bus = bus
        self.users = users
        self._clock = clock

    async def create(
        self,
        user_id: str,
        title: str,
        body: str,
        title_ar: str = "",
        body_ar: str = "",
        type: NotificationType = NotificationType.GENERAL,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        action_url: Optional[str] = None,
    ) -> Notification:
        """Store a notification and queue it for push delivery."""
        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            title_ar=title_ar,
            body_ar=body_ar,
            type=type,
            priority=priority,
            action_url=action_url,
            created_at=self._clock(),
        )
        await self.notifications.add(notification)
        # Published only once the insert has succeeded
        await self.bus.publish(
            NotificationCreatedEvent(notification_id=notification.id, user_id=notification.user_id)
        )
        logger.info("Notification created", notification_id=notification.id, user_id=notification.user_id)
        return notification

    async def list(
        self,
        user_id: str,
        last_notification_id: Optional[str] = None,
        page_size: int = 10,
        time_filter: NotificationTimeFilter = NotificationTimeFilter.ALL,
    ) -> Tuple[List[Notification], bool]:
        """Cursor-paged notifications of a user, newest first."""
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise MessageValidationError(f"Page size must be between 1 and {MAX_PAGE_SIZE}", field="page_size")
        return await self.notifications.list_for_user(
            user_id,
            last_notification_id=last_notification_id,
            page_size=page_size,
            time_filter=time_filter,
            now=self._clock(),
        )

    async def set_read(self, notification_id: str, is_read: bool = True) -> Notification:
        """Mark one notification read or unread."""
        notification = await self.notifications.get(notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)

        now = self._clock()
        changed = notification.mark_read(now) if is_read else notification.mark_unread(now)
        if changed:
            await self.notifications.update(notification)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user as read."""
        unread = await self.notifications.list_unread(user_id)
        if not unread:
            return 0

        now = self._clock()
        for notification in unread:
            notification.mark_read(now)
        await self.notifications.update_many(unread)
        logger.info("Notifications marked read", user_id=user_id, count=len(unread))
        return len(unread)

    async def register_push_token(self, user_id: str, push_token: str, language: Optional[str] = None) -> None:
        """Store the device token push delivery will use for a user."""
        if self.users is None:
            raise MessagingError("No user directory configured")
        if not push_token or not push_token.strip():
            raise MessageValidationError("Push token cannot be empty", field="push_token")
        await self.users.set_push_token(user_id, push_token.strip(), language)

    async def has_push_token(self, user_id: str) -> bool:
        if self.users is None:
            return False
        profile = await self.users.get_profile(user_id)
        return bool(profile and profile.push_token)
