"""
Push Delivery Pipeline
======================
Handles NotificationCreatedEvent: resolves the user's push profile, sends
the notification and records the delivery status.

The handler is safe to replay: a notification that has already left
Pending is skipped.
"""

from datetime import datetime
from typing import Callable

import structlog

from smsly_messaging.logging import log_event

from .events import EventBus, NotificationCreatedEvent
from .models import NotificationStatus, utcnow
from .sender import PushNotificationSender
from .stores import NotificationStore, UserDirectory

logger = structlog.get_logger(__name__)


class NotificationCreatedHandler:
    """Push delivery for newly created notifications."""

    def __init__(
        self,
        notifications: NotificationStore,
        users: UserDirectory,
        sender: PushNotificationSender,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.notifications = notifications
        self.users = users
        self.sender = sender
        self._clock = clock

    def register(self, bus: EventBus) -> None:
        bus.subscribe(NotificationCreatedEvent, self)

    async def __call__(self, event: NotificationCreatedEvent) -> None:
        try:
            await self._handle(event)
        except Exception as e:
            logger.error(
                "Error handling NotificationCreatedEvent",
                notification_id=event.notification_id,
                error=str(e),
                exc_info=True,
            )
            await self._mark_failed_quietly(event.notification_id)

    async def _handle(self, event: NotificationCreatedEvent) -> None:
        notification = await self.notifications.get(event.notification_id)
        if notification is None:
            logger.warning("Notification not found", notification_id=event.notification_id)
            return

        if notification.status is not NotificationStatus.PENDING:
            logger.info(
                "Notification already processed",
                notification_id=notification.id,
                status=notification.status.value,
            )
            return

        profile = await self.users.get_profile(event.user_id)
        if profile is None:
            logger.warning("User not found", user_id=event.user_id, notification_id=notification.id)
            await self._set_status(notification, NotificationStatus.FAILED)
            return

        if not profile.push_token:
            # Stays Pending: the notification is still listed in-app
            logger.info("User has no push token", user_id=event.user_id, notification_id=notification.id)
            return

        try:
            result = await self.sender.send(notification, profile.push_token, profile.language or "en")
            status = NotificationStatus.SENT if result.success else NotificationStatus.FAILED
        except Exception as e:
            logger.error("Push provider raised", notification_id=notification.id, error=str(e), exc_info=True)
            status = NotificationStatus.FAILED

        await self._set_status(notification, status)
        log_event(
            f"push.{status.value}",
            notification_id=notification.id,
            user_id=notification.user_id,
        )

    async def _set_status(self, notification, status: NotificationStatus) -> None:
        if notification.update_status(status, now=self._clock()):
            await self.notifications.update(notification)

    async def _mark_failed_quietly(self, notification_id: str) -> None:
        try:
            notification = await self.notifications.get(notification_id)
            if notification is not None:
                await self._set_status(notification, NotificationStatus.FAILED)
        except Exception as e:
            logger.error(
                "Failed to update notification status after error",
                notification_id=notification_id,
                error=str(e),
            )
