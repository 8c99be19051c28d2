"""
Shared fixtures and fakes for the messaging test suite.
"""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from smsly_messaging.config import MessagingConfig, TwilioConfig
from smsly_messaging.messaging import InMemoryMessageStore, InMemoryOtpStore, MessagingManager
from smsly_messaging.providers import (
    BaseProviderAdapter,
    EmailProvider,
    ProviderStatus,
    PushProvider,
    SendResult,
)
from smsly_messaging.providers.twilio import TwilioAdapter


class FixedClock:
    """Deterministic clock; call it to read, advance it to move time."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeProvider(BaseProviderAdapter):
    """In-process provider recording every send."""

    name = "fake"
    supports_whatsapp = True

    def __init__(self):
        super().__init__(config=None)
        self.calls: List[Dict[str, Any]] = []
        self.fail_sms: Optional[str] = None
        self.fail_whatsapp: Optional[str] = None
        self.raise_sms: Optional[Exception] = None
        self._sids = itertools.count(1)

    def _accept(self, prefix: str) -> SendResult:
        return SendResult(
            success=True,
            provider_message_id=f"{prefix}{next(self._sids):04d}",
            status=ProviderStatus.QUEUED,
        )

    async def send_sms(self, to, from_, body, status_callback=None):
        self.calls.append({"method": "sms", "to": to, "from": from_, "body": body})
        if self.raise_sms:
            raise self.raise_sms
        if self.fail_sms:
            return SendResult.failed(self.fail_sms, error_code="21211")
        return self._accept("SM")

    async def send_whatsapp(self, to, from_, body, status_callback=None):
        self.calls.append({
            "method": "whatsapp", "to": to, "from": from_, "body": body,
            "status_callback": status_callback,
        })
        if self.fail_whatsapp:
            return SendResult.failed(self.fail_whatsapp, error_code="63016")
        return self._accept("WA")

    async def send_whatsapp_template(self, to, from_, template_id, variables, status_callback=None):
        self.calls.append({
            "method": "whatsapp_template", "to": to, "from": from_,
            "template_id": template_id, "variables": variables,
            "status_callback": status_callback,
        })
        if self.fail_whatsapp:
            return SendResult.failed(self.fail_whatsapp, error_code="63016")
        return self._accept("WT")

    def calls_for(self, method: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method]


class FakePushProvider(PushProvider):
    """Push provider recording every token send."""

    def __init__(self, success: bool = True, error: Optional[Exception] = None):
        self.success = success
        self.error = error
        self.sent: List[Dict[str, Any]] = []

    async def send_to_token(self, token, title, body, data=None):
        self.sent.append({"token": token, "title": title, "body": body, "data": data})
        if self.error:
            raise self.error
        if self.success:
            return SendResult(success=True, provider_message_id="projects/p/messages/1", status=ProviderStatus.SENT)
        return SendResult.failed("Requested entity was not found.", error_code="NOT_FOUND")


class FakeEmailProvider(EmailProvider):
    """Email provider recording every send."""

    def __init__(self, success: bool = True):
        self.success = success
        self.sent: List[Dict[str, Any]] = []

    async def send_email(self, to, sender_email, sender_name, subject, html_body):
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        if self.success:
            return SendResult(success=True, provider_message_id="email-1")
        return SendResult.failed("Mailbox unavailable")


class InterleavingMessageStore(InMemoryMessageStore):
    """Yields to the event loop after each SID lookup, so concurrent callers read the same state."""

    async def get_by_sid(self, message_sid):
        message = await super().get_by_sid(message_sid)
        await asyncio.sleep(0)
        return message


class SlowUpdateMessageStore(InMemoryMessageStore):
    """Takes a while to persist updates."""

    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay

    async def update(self, message):
        await asyncio.sleep(self.delay)
        await super().update(message)


class InterleavingOtpStore(InMemoryOtpStore):
    """Yields to the event loop after each lookup, so concurrent validations read the same challenge."""

    async def get_latest_valid(self, phone, now):
        otp = await super().get_latest_valid(phone, now)
        await asyncio.sleep(0)
        return otp


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def message_store():
    return InMemoryMessageStore()


@pytest.fixture
def otp_store():
    return InMemoryOtpStore()


@pytest.fixture
def messaging_config():
    return MessagingConfig(
        phone_number="+15550001",
        whatsapp_sender="+15550002",
        sender_name="Acme",
        status_callback_base_url="https://hooks.example.com",
        otp_template_id="",
        otp_length=4,
        otp_expiry_minutes=5,
    )


@pytest.fixture
def manager(provider, message_store, otp_store, messaging_config, clock):
    return MessagingManager(provider, message_store, otp_store, messaging_config, clock=clock)


@pytest.fixture
def twilio_config():
    return TwilioConfig(
        account_sid="AC123",
        auth_token="secret-token",
        messaging_service_sid="",
        api_base_url="https://api.twilio.test/2010-04-01",
    )


@pytest.fixture
def twilio_adapter(twilio_config):
    return TwilioAdapter(twilio_config)
