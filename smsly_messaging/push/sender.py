"""
Push Sender
===========
Localizes a notification and sends it to a device token.
"""

from typing import Dict

import structlog

from smsly_messaging.providers.base import PushProvider, SendResult

from .models import Notification

logger = structlog.get_logger(__name__)


def build_push_data(notification: Notification) -> Dict[str, str]:
    """Data payload delivered alongside the visible notification."""
    data = {
        "notificationId": notification.id,
        "type": notification.type.value,
        "priority": notification.priority.value,
    }
    if notification.action_url:
        data["actionUrl"] = notification.action_url
    return data


class PushNotificationSender:
    """Sends notifications through a PushProvider."""

    def __init__(self, provider: PushProvider):
        self.provider = provider

    async def send(self, notification: Notification, push_token: str, language: str = "en") -> SendResult:
        if not push_token or not push_token.strip():
            logger.warning("Push token is empty", notification_id=notification.id)
            return SendResult.failed("Push token is empty")

        title, body = notification.localized(language)
        result = await self.provider.send_to_token(push_token, title, body, build_push_data(notification))

        if result.success:
            logger.info(
                "Push notification sent",
                notification_id=notification.id,
                user_id=notification.user_id,
                language=language,
            )
        else:
            logger.warning(
                "Push notification failed",
                notification_id=notification.id,
                user_id=notification.user_id,
                error=result.error_message,
            )
        return result
