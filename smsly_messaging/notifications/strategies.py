"""
Notification Strategies
=======================
One strategy per delivery channel, all with the same contract:
``await strategy.send(request) -> NotificationResult``.

Strategies turn provider failures into failed results; the orchestrator
still guards against anything that escapes.
"""

import asyncio
import html
from abc import ABC, abstractmethod
from typing import List, Sequence

import structlog

from smsly_messaging.logging import mask_phone
from smsly_messaging.messaging.manager import MessagingManager
from smsly_messaging.messaging.models import Message, MessageStatus
from smsly_messaging.providers.base import EmailProvider, PushProvider

from .models import NotificationChannel, NotificationRequest, NotificationResult

logger = structlog.get_logger(__name__)

EMAIL_TEMPLATE = """<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: #4CAF50; color: white; padding: 10px; text-align: center; }}
        .content {{ padding: 20px; background-color: #f9f9f9; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h2>{subject}</h2></div>
        <div class="content">{body}</div>
    </div>
</body>
</html>"""


class NotificationStrategy(ABC):
    """Sends a notification request on a single channel."""

    channel: NotificationChannel

    @abstractmethod
    async def send(self, request: NotificationRequest) -> NotificationResult:
        """Send the request and report the outcome."""


def render_email_html(subject: str, body: str) -> str:
    """Render the plain notification body into the HTML email layout."""
    return EMAIL_TEMPLATE.format(
        subject=html.escape(subject),
        body=html.escape(body).replace("\n", "<br>"),
    )


class EmailNotificationStrategy(NotificationStrategy):
    """Email delivery through an EmailProvider."""

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        provider: EmailProvider,
        sender_email: str = "noreply@example.com",
        sender_name: str = "Notification Service",
    ):
        self.provider = provider
        self.sender_email = sender_email
        self.sender_name = sender_name

    async def send(self, request: NotificationRequest) -> NotificationResult:
        recipient = request.recipient_for(self.channel)
        try:
            result = await self.provider.send_email(
                recipient,
                self.sender_email,
                self.sender_name,
                request.subject,
                render_email_html(request.subject, request.body),
            )
        except Exception as e:
            logger.error("Email notification failed", error=str(e), exc_info=True)
            return NotificationResult.failed(self.channel, str(e))

        if result.success:
            return NotificationResult.successful(self.channel, result.provider_message_id)
        return NotificationResult.failed(self.channel, result.error_message or "Failed to send email")


class FirebaseNotificationStrategy(NotificationStrategy):
    """Push delivery; the recipient is a device token."""

    channel = NotificationChannel.FIREBASE

    def __init__(self, provider: PushProvider):
        self.provider = provider

    async def send(self, request: NotificationRequest) -> NotificationResult:
        token = request.recipient_for(self.channel)
        try:
            result = await self.provider.send_to_token(
                token, request.subject, request.body, request.metadata
            )
        except Exception as e:
            logger.error("Firebase notification failed", error=str(e), exc_info=True)
            return NotificationResult.failed(self.channel, str(e))

        if result.success:
            return NotificationResult.successful(self.channel, result.provider_message_id)
        return NotificationResult.failed(
            self.channel, result.error_message or "Failed to send Firebase notification"
        )


class _MessagingStrategy(NotificationStrategy):
    """Shared handling for channels backed by the messaging manager."""

    default_error = "Failed to send message"

    def __init__(self, manager: MessagingManager):
        self.manager = manager

    @abstractmethod
    async def _send_message(self, phone: str, text: str) -> Message:
        """Send the formatted text through the manager."""

    async def send(self, request: NotificationRequest) -> NotificationResult:
        phone = request.recipient_for(self.channel)
        try:
            message = await self._send_message(phone, self.format(request))
        except Exception as e:
            logger.error(
                "Messaging notification failed",
                channel=self.channel.value,
                phone=mask_phone(phone),
                error=str(e),
                exc_info=True,
            )
            return NotificationResult.failed(self.channel, str(e))

        if message.status is MessageStatus.FAILED:
            return NotificationResult.failed(self.channel, message.failure_reason or self.default_error)
        return NotificationResult.successful(self.channel, message.message_sid)

    def format(self, request: NotificationRequest) -> str:
        return f"{request.subject}\n\n{request.body}"


class TwilioSmsNotificationStrategy(_MessagingStrategy):
    """SMS delivery through the messaging manager."""

    channel = NotificationChannel.TWILIO_SMS
    default_error = "Failed to send SMS"

    async def _send_message(self, phone: str, text: str) -> Message:
        return await self.manager.send_sms(phone, text)


class TwilioWhatsAppNotificationStrategy(_MessagingStrategy):
    """WhatsApp delivery through the messaging manager. The subject is bold."""

    channel = NotificationChannel.TWILIO_WHATSAPP
    default_error = "Failed to send WhatsApp message"

    async def _send_message(self, phone: str, text: str) -> Message:
        return await self.manager.send_whatsapp(phone, text)

    def format(self, request: NotificationRequest) -> str:
        return f"*{request.subject}*\n\n{request.body}"


class AllNotificationStrategy(NotificationStrategy):
    """
    Sends on every configured concrete channel concurrently.

    Succeeds when at least one channel succeeds; the summary reports how
    many did.
    """

    channel = NotificationChannel.ALL

    def __init__(self, strategies: Sequence[NotificationStrategy]):
        self.strategies: List[NotificationStrategy] = [
            s for s in strategies if s.channel is not NotificationChannel.ALL
        ]

    async def send(self, request: NotificationRequest) -> NotificationResult:
        if not self.strategies:
            return NotificationResult.failed(self.channel, "No notification channels configured")

        outcomes = await asyncio.gather(
            *(strategy.send(request) for strategy in self.strategies),
            return_exceptions=True,
        )
        results = []
        for strategy, outcome in zip(self.strategies, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Channel raised during fan-out", channel=strategy.channel.value, error=str(outcome))
                outcome = NotificationResult.failed(strategy.channel, str(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "All channels notification completed",
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )

        if succeeded:
            result = NotificationResult.successful(self.channel, f"{succeeded}/{len(results)} channels succeeded")
        else:
            result = NotificationResult.failed(self.channel, "All notification channels failed")
        result.metadata = {
            r.channel.value: "sent" if r.success else (r.error_message or "failed") for r in results
        }
        return result
