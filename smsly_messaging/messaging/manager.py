"""
Messaging Manager
=================
Orchestrates SMS/WhatsApp sends, the OTP lifecycle, provider status
callbacks and WhatsApp to SMS fallback.

Provider failures never propagate from a send: they are recorded as a
failed message with the provider's reason.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import structlog

from smsly_messaging.config import MessagingConfig
from smsly_messaging.errors import MessageValidationError
from smsly_messaging.logging import log_event, mask_phone
from smsly_messaging.providers.base import BaseProviderAdapter, ProviderStatus, SendResult

from .models import Message, MessageChannel, MessageStatus, Otp, utcnow
from .otp import codes_match, generate_otp_code
from .phone_utils import normalize_phone, validate_e164
from .stores import MessageStore, OtpStore

logger = structlog.get_logger(__name__)

OTP_SMS_TEXT = "{code} is your verification code. For your security, do not share this code."
OTP_WHATSAPP_TEXT = "Hello {name}, {code} is your verification code. For your security, do not share this code."
DEFAULT_OTP_NAME = "User"


def _require(value: Optional[str], message: str, field: str) -> str:
    if not value or not value.strip():
        raise MessageValidationError(message, field=field)
    return value


def _require_phone(phone: Optional[str]) -> str:
    _require(phone, "Phone number cannot be empty", "phone")
    if not validate_e164(phone):
        raise MessageValidationError("Phone number must be in E.164 format", field="phone")
    return phone


def _coerce_status(status: Union[MessageStatus, ProviderStatus, str]) -> MessageStatus:
    return MessageStatus(getattr(status, "value", status))


class MessagingManager:
    """
    Domain service for SMS and WhatsApp messaging.

    Usage:
        async with TwilioAdapter(TwilioConfig()) as provider:
            manager = MessagingManager(provider, message_store, otp_store, MessagingConfig())
            otp, message = await manager.send_otp("+1 555 0100", name="Dana")
            ok = await manager.validate_otp("+15550100", otp.code)
    """

    def __init__(
        self,
        provider: BaseProviderAdapter,
        messages: MessageStore,
        otps: OtpStore,
        config: Optional[MessagingConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self.messages = messages
        self.otps = otps
        self.config = (config or MessagingConfig()).validate()
        self._clock = clock

    # =========================================================================
    # Sends
    # =========================================================================

    async def send_sms(self, phone: str, body: str) -> Message:
        """Send an SMS, prefixed with the configured sender name."""
        _require_phone(phone)
        _require(body, "Message cannot be empty", "body")

        message = Message(
            recipient_phone_number=phone,
            body=body,
            channel=MessageChannel.SMS,
            created_at=self._clock(),
        )
        text = f"{self.config.sender_name} :\n{body}"
        return await self._deliver(
            message,
            lambda: self.provider.send_sms(
                message.recipient_phone_number, self.config.phone_number, text
            ),
            "Failed to send SMS via Twilio",
        )

    async def send_whatsapp(
        self,
        phone: str,
        body: str,
        status_callback: Optional[str] = None,
    ) -> Message:
        """Send a plain-text WhatsApp message."""
        _require_phone(phone)
        _require(body, "Message cannot be empty", "body")

        message = Message(
            recipient_phone_number=phone,
            body=body,
            channel=MessageChannel.WHATSAPP,
            created_at=self._clock(),
        )
        return await self._deliver(
            message,
            lambda: self.provider.send_whatsapp(
                message.recipient_phone_number,
                self.config.whatsapp_sender,
                body,
                status_callback=status_callback,
            ),
            "Failed to send WhatsApp message via Twilio",
        )

    async def send_whatsapp_template(
        self,
        phone: str,
        template_id: str,
        variables: Optional[Dict[str, Any]] = None,
        status_callback: Optional[str] = None,
    ) -> Message:
        """Send a WhatsApp content template. Variables are stored as JSON."""
        _require_phone(phone)
        _require(template_id, "Template ID cannot be empty", "template_id")

        variables = variables or {}
        message = Message(
            recipient_phone_number=phone,
            channel=MessageChannel.WHATSAPP,
            template_id=template_id,
            template_variables=json.dumps(variables),
            created_at=self._clock(),
        )
        return await self._deliver(
            message,
            lambda: self.provider.send_whatsapp_template(
                message.recipient_phone_number,
                self.config.whatsapp_sender,
                template_id,
                variables,
                status_callback=status_callback,
            ),
            "Failed to send WhatsApp template message via Twilio",
        )

    async def _deliver(
        self,
        message: Message,
        send: Callable[[], Awaitable[SendResult]],
        default_reason: str,
    ) -> Message:
        await self.messages.add(message)

        try:
            result = await send()
        except Exception as e:
            logger.error(
                "Provider call raised",
                channel=message.channel.value,
                phone=mask_phone(message.recipient_phone_number),
                error=str(e),
                exc_info=True,
            )
            result = SendResult.failed(str(e) or type(e).__name__)

        now = self._clock()
        if result.success and result.provider_message_id:
            message.mark_sent(result.provider_message_id, now=now)
            log_event(
                f"{message.channel.value}.sent",
                message_id=message.id,
                message_sid=message.message_sid,
                phone=mask_phone(message.recipient_phone_number),
            )
        else:
            message.mark_failed(result.error_message or default_reason, now=now)
            log_event(
                f"{message.channel.value}.failed",
                level="warning",
                message_id=message.id,
                phone=mask_phone(message.recipient_phone_number),
                error_code=result.error_code,
                reason=message.failure_reason,
            )

        # The provider has accepted or rejected the send; record it even if
        # the caller is cancelled meanwhile.
        await asyncio.shield(self.messages.update(message))
        return message

    # =========================================================================
    # OTP
    # =========================================================================

    def generate_otp(self, phone: str, expiration_minutes: Optional[int] = None) -> Otp:
        """Build a new challenge without persisting it."""
        _require(phone, "Phone number cannot be empty", "phone")
        if expiration_minutes is None:
            expiration_minutes = self.config.otp_expiry_minutes
        return Otp.issue(
            phone,
            generate_otp_code(self.config.otp_length),
            expiration_minutes=expiration_minutes,
            now=self._clock(),
        )

    async def send_otp(self, phone: str, name: Optional[str] = None) -> Tuple[Otp, Message]:
        """
        Issue an OTP and deliver it, WhatsApp first with SMS fallback.

        Returns:
            Tuple of (otp, message) where message is the last delivery attempt
        """
        _require_phone(phone)

        otp = self.generate_otp(phone)
        await self.otps.add(otp)
        log_event("otp.issued", otp_id=otp.id, phone=mask_phone(otp.phone_number))

        message = await self.send_whatsapp_otp(phone, name or DEFAULT_OTP_NAME, otp.code)
        if message.status is MessageStatus.FAILED:
            logger.warning(
                "WhatsApp OTP failed, falling back to SMS",
                phone=mask_phone(otp.phone_number),
                reason=message.failure_reason,
            )
            message = await self.send_sms_otp(phone, otp.code)

        return otp, message

    async def send_whatsapp_otp(
        self,
        phone: str,
        name: str,
        code: str,
        status_callback: Optional[str] = None,
    ) -> Message:
        """Send an OTP over WhatsApp, through the content template when configured."""
        _require_phone(phone)
        _require(code, "OTP cannot be empty", "code")

        callback = status_callback or self.config.status_callback_url
        if self.config.otp_template_id:
            return await self.send_whatsapp_template(
                phone, self.config.otp_template_id, {"otp": code}, status_callback=callback
            )
        text = OTP_WHATSAPP_TEXT.format(name=name or DEFAULT_OTP_NAME, code=code)
        return await self.send_whatsapp(phone, text, status_callback=callback)

    async def send_sms_otp(self, phone: str, code: str) -> Message:
        """Send an OTP over SMS."""
        _require_phone(phone)
        _require(code, "OTP cannot be empty", "code")
        return await self.send_sms(phone, OTP_SMS_TEXT.format(code=code))

    async def validate_otp(self, phone: str, code: str) -> bool:
        """
        Validate and consume the latest challenge for a phone.

        A challenge validates at most once: concurrent callers race on a
        conditional mark-used and only the winner gets True.
        """
        _require(phone, "Phone number cannot be empty", "phone")
        _require(code, "OTP code cannot be empty", "code")

        normalized = normalize_phone(phone)
        now = self._clock()
        otp = await self.otps.get_latest_valid(normalized, now)
        if otp is None:
            logger.warning("No valid OTP found", phone=mask_phone(normalized))
            return False

        if not codes_match(otp.code, code):
            logger.warning("Invalid OTP code", phone=mask_phone(normalized))
            return False

        if not await self.otps.mark_used(otp.id, now):
            logger.warning("OTP already consumed", phone=mask_phone(normalized), otp_id=otp.id)
            return False

        log_event("otp.validated", otp_id=otp.id, phone=mask_phone(normalized))
        return True

    async def purge_expired_otps(self) -> int:
        """Soft-delete every expired challenge."""
        count = await self.otps.delete_expired(self._clock())
        if count:
            logger.info("Expired OTPs purged", count=count)
        return count

    # =========================================================================
    # Status callbacks
    # =========================================================================

    async def update_message_status(
        self,
        message_sid: str,
        status: Union[MessageStatus, ProviderStatus, str],
        failure_reason: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Apply a provider status to the message it correlates to.

        Unknown correlation ids are logged and ignored. Stale and duplicate
        statuses leave the record unchanged.
        """
        _require(message_sid, "Message SID cannot be empty", "message_sid")
        new_status = _coerce_status(status)

        message = await self.messages.get_by_sid(message_sid)
        if message is None:
            logger.warning("Message not found for status update", message_sid=message_sid)
            return None

        previous = message.status
        message, applied = await self._store_status(message, new_status, failure_reason)
        if not applied:
            logger.debug(
                "Status update ignored",
                message_sid=message_sid,
                current=message.status.value,
                received=new_status.value,
            )
            return message

        logger.info(
            "Message status updated",
            message_sid=message_sid,
            previous=previous.value,
            status=message.status.value,
        )
        return message

    async def _store_status(
        self,
        message: Message,
        status: MessageStatus,
        failure_reason: Optional[str] = None,
    ) -> Tuple[Message, bool]:
        """
        Apply a status and store it with a compare-and-set on the status read.

        When another writer moved the status first, the message is reloaded
        and the transition re-checked against the stored state. Statuses only
        move forward, so the retries are bounded.

        Returns:
            Tuple of (latest message, whether this call changed it)
        """
        while True:
            expected = message.status
            if not message.apply_status(status, failure_reason=failure_reason, now=self._clock()):
                return message, False
            if await self.messages.update_if_status(message, expected):
                return message, True

            current = await self.messages.get(message.id)
            if current is None:
                return message, False
            logger.debug(
                "Concurrent status change, retrying",
                message_id=message.id,
                expected=expected.value,
                current=current.status.value,
            )
            message = current

    async def handle_whatsapp_failure(self, message_sid: str, failure_reason: str) -> Optional[Message]:
        """
        Fall back to SMS for a WhatsApp message the provider failed to deliver.

        Returns:
            The SMS fallback message, or None if there is nothing to fall back from
        """
        _require(message_sid, "Message SID cannot be empty", "message_sid")

        message = await self.messages.get_by_sid(message_sid)
        if message is None:
            logger.warning("Message not found for WhatsApp fallback", message_sid=message_sid)
            return None

        if message.channel is not MessageChannel.WHATSAPP:
            logger.warning("Message is not a WhatsApp message, no SMS fallback", message_sid=message_sid)
            return None

        if message.fallback_message_id:
            existing = await self.messages.get(message.fallback_message_id)
            if existing is not None:
                logger.info(
                    "SMS fallback already sent",
                    message_sid=message_sid,
                    fallback_message_id=existing.id,
                )
                return existing

        message, _ = await self._store_status(
            message,
            MessageStatus.FAILED,
            failure_reason=failure_reason or "WhatsApp delivery failed",
        )

        body = self._fallback_body(message)
        if not body:
            logger.warning("No content to fall back with", message_sid=message_sid)
            return None

        sms = await self.send_sms(message.recipient_phone_number, body)
        message.fallback_message_id = sms.id
        await asyncio.shield(self.messages.update(message))

        log_event(
            "whatsapp.fallback_sent",
            message_sid=message_sid,
            fallback_message_id=sms.id,
            fallback_status=sms.status.value,
            phone=mask_phone(message.recipient_phone_number),
        )
        return sms

    @staticmethod
    def _fallback_body(message: Message) -> Optional[str]:
        if message.body and message.body.strip():
            return message.body
        if not message.template_variables:
            return None
        try:
            variables = json.loads(message.template_variables)
        except ValueError:
            return None
        code = variables.get("otp") if isinstance(variables, dict) else None
        if code:
            return OTP_SMS_TEXT.format(code=code)
        return None

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_messages(
        self,
        phone: Optional[str] = None,
        channel: Optional[MessageChannel] = None,
        status: Optional[MessageStatus] = None,
        limit: int = 50,
    ) -> List[Message]:
        """Message history, newest first."""
        if limit < 1:
            raise MessageValidationError("Limit must be positive", field="limit")
        return await self.messages.list(
            phone=normalize_phone(phone) if phone else None,
            channel=channel,
            status=status,
            limit=limit,
        )
