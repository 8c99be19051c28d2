"""
Twilio Provider Adapter
=======================
Production adapter for the Twilio Programmable Messaging API
(SMS, WhatsApp text and WhatsApp content templates).
"""

import hashlib
import hmac
import json
from base64 import b64encode
from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from smsly_messaging.config import TwilioConfig
from smsly_messaging.errors import ProviderError
from smsly_messaging.logging import mask_phone
from smsly_messaging.providers.base import (
    BaseProviderAdapter,
    ProviderStatus,
    SendResult,
    WebhookEvent,
)

logger = structlog.get_logger(__name__)

WHATSAPP_PREFIX = "whatsapp:"

# Twilio status vocabulary -> provider status. Unknown statuses are queued.
STATUS_MAP = {
    "accepted": ProviderStatus.QUEUED,
    "scheduled": ProviderStatus.QUEUED,
    "queued": ProviderStatus.QUEUED,
    "sending": ProviderStatus.QUEUED,
    "sent": ProviderStatus.SENT,
    "delivered": ProviderStatus.DELIVERED,
    "read": ProviderStatus.DELIVERED,
    "undelivered": ProviderStatus.FAILED,
    "failed": ProviderStatus.FAILED,
    "canceled": ProviderStatus.FAILED,
}


def map_twilio_status(twilio_status: Optional[str]) -> ProviderStatus:
    """Map a Twilio message status onto the provider status set."""
    return STATUS_MAP.get((twilio_status or "").strip().lower(), ProviderStatus.QUEUED)


def compute_twilio_signature(auth_token: str, url: str, params: Dict[str, str]) -> str:
    """
    Compute the X-Twilio-Signature value for a form-encoded callback.

    The signed string is the full URL followed by every POST parameter,
    sorted by name, with name and value appended without delimiters.
    """
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode(), payload.encode(), hashlib.sha1).digest()
    return b64encode(digest).decode()


class TwilioAdapter(BaseProviderAdapter):
    """
    Twilio SMS/WhatsApp provider adapter.

    Features:
    - SMS, WhatsApp text and WhatsApp content-template sends
    - Retry of connection failures (the request never reached Twilio)
    - Webhook signature validation
    - Status callback parsing
    """

    name = "twilio"
    supports_whatsapp = True

    def __init__(
        self,
        config: TwilioConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = 3,
        retry_wait: Any = None,
    ):
        super().__init__(config)
        self.account_sid = config.account_sid
        self.auth_token = config.auth_token
        self.messaging_service_sid = config.messaging_service_sid or None
        self.base_url = f"{config.api_base_url.rstrip('/')}/Accounts/{self.account_sid}"
        self.max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=5)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        """Create HTTP client with auth."""
        auth = b64encode(f"{self.account_sid}:{self.auth_token}".encode()).decode()
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Basic {auth}"},
            timeout=self.config.timeout,
            transport=self._transport,
        )
        await super().initialize()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        await super().close()

    async def send_sms(
        self,
        to: str,
        from_: str,
        body: str,
        status_callback: Optional[str] = None,
    ) -> SendResult:
        """Send SMS via Twilio."""
        payload = {"To": to, "Body": body}
        self._apply_sender(payload, from_)
        if status_callback:
            payload["StatusCallback"] = status_callback
        return await self._create_message(payload, channel="sms")

    async def send_whatsapp(
        self,
        to: str,
        from_: str,
        body: str,
        status_callback: Optional[str] = None,
    ) -> SendResult:
        """Send a plain-text WhatsApp message via Twilio."""
        payload = {"To": self._whatsapp_address(to), "Body": body}
        payload["From"] = self._whatsapp_address(from_)
        if status_callback:
            payload["StatusCallback"] = status_callback
        return await self._create_message(payload, channel="whatsapp")

    async def send_whatsapp_template(
        self,
        to: str,
        from_: str,
        template_id: str,
        variables: Dict[str, Any],
        status_callback: Optional[str] = None,
    ) -> SendResult:
        """Send a WhatsApp content template (ContentSid) via Twilio."""
        payload = {
            "To": self._whatsapp_address(to),
            "From": self._whatsapp_address(from_),
            "ContentSid": template_id,
            "ContentVariables": json.dumps(variables or {}),
        }
        if status_callback:
            payload["StatusCallback"] = status_callback
        return await self._create_message(payload, channel="whatsapp_template")

    def validate_webhook(
        self,
        url: str,
        params: Dict[str, str],
        signature: str,
    ) -> bool:
        """Validate a Twilio webhook signature."""
        if not signature or not self.auth_token:
            return False
        expected = compute_twilio_signature(self.auth_token, url, params)
        return hmac.compare_digest(signature, expected)

    def parse_webhook(self, params: Dict[str, str]) -> WebhookEvent:
        """Parse a Twilio status callback."""
        raw_status = params.get("MessageStatus", "")
        return WebhookEvent(
            provider_message_id=params.get("MessageSid", "").strip(),
            status=map_twilio_status(raw_status),
            raw_status=raw_status,
            error_code=params.get("ErrorCode") or None,
            error_message=params.get("ErrorMessage") or None,
            raw_payload=dict(params),
        )

    async def health_check(self) -> bool:
        """Check Twilio API availability."""
        if not self._client:
            return False

        try:
            response = await self._client.get(f"{self.base_url}.json")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _apply_sender(self, payload: Dict[str, Any], from_: str) -> None:
        if self.messaging_service_sid:
            payload["MessagingServiceSid"] = self.messaging_service_sid
        else:
            payload["From"] = from_

    @staticmethod
    def _whatsapp_address(number: str) -> str:
        number = "".join(number.split())
        if number.startswith(WHATSAPP_PREFIX):
            return number
        return f"{WHATSAPP_PREFIX}{number}"

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            "Retrying Twilio request after connection failure",
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        # Only connection errors are retried: the request never reached Twilio,
        # so retrying cannot duplicate a send.
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.ConnectError),
            stop=stop_after_attempt(self.max_attempts),
            wait=self._retry_wait,
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                return await self._client.post(f"{self.base_url}/Messages.json", data=payload)

    async def _create_message(self, payload: Dict[str, Any], channel: str) -> SendResult:
        if not self._client:
            raise ProviderError("Adapter not initialized", provider=self.name)

        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error(
                "Twilio send failed",
                channel=channel,
                to=mask_phone(payload.get("To")),
                error=str(e),
            )
            return SendResult.failed(str(e) or type(e).__name__)

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code in (200, 201) and data.get("sid"):
            logger.info(
                "Twilio message accepted",
                channel=channel,
                message_sid=data["sid"],
                status=data.get("status"),
            )
            return SendResult(
                success=True,
                provider_message_id=data["sid"],
                status=map_twilio_status(data.get("status")),
                raw_response=data,
            )

        error_message = data.get("message") or f"HTTP {response.status_code}"
        logger.warning(
            "Twilio rejected message",
            channel=channel,
            to=mask_phone(payload.get("To")),
            status_code=response.status_code,
            error=error_message,
        )
        return SendResult.failed(
            error_message,
            error_code=str(data.get("code", response.status_code)),
            raw_response=data or None,
        )
