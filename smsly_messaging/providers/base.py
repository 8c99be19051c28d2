"""
Provider Adapter Base
=====================
Base classes for SMS/WhatsApp, push and email provider integrations.

Adapters are the only code that knows a provider's wire format. They return
a SendResult for provider-side rejections instead of raising.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class ProviderStatus(str, Enum):
    """Delivery status as reported by a provider, before mapping."""
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class SendResult:
    """Result of a provider send operation."""
    success: bool
    provider_message_id: Optional[str] = None
    status: ProviderStatus = ProviderStatus.QUEUED
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None

    @classmethod
    def failed(cls, error_message: str, error_code: Optional[str] = None, **kwargs) -> "SendResult":
        return cls(
            success=False,
            status=ProviderStatus.FAILED,
            error_code=error_code,
            error_message=error_message,
            **kwargs,
        )


@dataclass
class WebhookEvent:
    """Parsed status callback from a provider."""
    provider_message_id: str
    status: ProviderStatus
    raw_status: str = ""
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw_payload: Optional[Dict[str, Any]] = None


class BaseProviderAdapter(ABC):
    """
    Abstract base class for SMS/WhatsApp provider adapters.

    All provider implementations (Twilio, ...) inherit from this.
    """

    name: str = "base"
    supports_whatsapp: bool = False

    def __init__(self, config: Any):
        """
        Initialize the adapter with provider-specific configuration.

        Args:
            config: Provider-specific config (API keys, account IDs, etc.)
        """
        self.config = config
        self._is_initialized = False

    async def initialize(self) -> None:
        """Initialize the adapter (e.g., create HTTP clients)."""
        self._is_initialized = True
        logger.info("Provider adapter initialized", provider=self.name)

    async def close(self) -> None:
        """Clean up resources (e.g., close HTTP clients)."""
        self._is_initialized = False
        logger.info("Provider adapter closed", provider=self.name)

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, *args):
        await self.close()

    @abstractmethod
    async def send_sms(
        self,
        to: str,
        from_: str,
        body: str,
        status_callback: Optional[str] = None,
    ) -> SendResult:
        """
        Send an SMS message.

        Args:
            to: Recipient phone number
            from_: Sender phone number or alphanumeric ID
            body: Message content
            status_callback: URL the provider reports delivery status to

        Returns:
            SendResult with provider response
        """

    async def send_whatsapp(
        self,
        to: str,
        from_: str,
        body: str,
        status_callback: Optional[str] = None,
    ) -> SendResult:
        """Send a plain-text WhatsApp message."""
        raise NotImplementedError(f"{self.name} does not support WhatsApp")

    async def send_whatsapp_template(
        self,
        to: str,
        from_: str,
        template_id: str,
        variables: Dict[str, Any],
        status_callback: Optional[str] = None,
    ) -> SendResult:
        """Send a WhatsApp message from an approved content template."""
        raise NotImplementedError(f"{self.name} does not support WhatsApp templates")

    def validate_webhook(
        self,
        url: str,
        params: Dict[str, str],
        signature: str,
    ) -> bool:
        """
        Validate a webhook signature from the provider.

        Providers without signature support reject everything.
        """
        return False

    def parse_webhook(self, params: Dict[str, str]) -> WebhookEvent:
        """Parse a webhook payload into a standardized WebhookEvent."""
        raise NotImplementedError(f"{self.name} must implement webhook parsing")

    async def health_check(self) -> bool:
        """Check if the provider is reachable."""
        return self._is_initialized


class PushProvider(ABC):
    """Push notification provider (device token addressed)."""

    name: str = "push"

    @abstractmethod
    async def send_to_token(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> SendResult:
        """Send a push notification to a single device token."""


class EmailProvider(ABC):
    """Email provider contract. Concrete providers live outside this core."""

    name: str = "email"

    @abstractmethod
    async def send_email(
        self,
        to: str,
        sender_email: str,
        sender_name: str,
        subject: str,
        html_body: str,
    ) -> SendResult:
        """Send a single HTML email."""
