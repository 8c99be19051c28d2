"""
Unit Tests for the Twilio Webhook Router
========================================
Signature enforcement, status application and SMS fallback over HTTP.
"""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

WEBHOOK_URL = "http://testserver/api/twilio/whatsapp-status"


@pytest.fixture
def app_factory(manager, twilio_adapter):
    from smsly_messaging.config import WebhookConfig
    from smsly_messaging.webhooks import create_twilio_webhook_router

    def build(verify=True):
        app = FastAPI()
        app.include_router(create_twilio_webhook_router(
            manager, twilio_adapter, WebhookConfig(verify_signatures=verify, public_url="")
        ))
        return TestClient(app)

    return build


def signed_post(client, params, **headers):
    from smsly_messaging.providers import compute_twilio_signature

    headers["X-Twilio-Signature"] = compute_twilio_signature("secret-token", WEBHOOK_URL, params)
    return client.post("/api/twilio/whatsapp-status", data=params, headers=headers)


class TestWhatsAppStatusWebhook:
    """Tests for POST /api/twilio/whatsapp-status."""

    def test_delivered_status_applied(self, app_factory, manager, message_store):
        """A signed Delivered callback should update the message."""
        from smsly_messaging.messaging import MessageStatus

        message = asyncio.run(manager.send_whatsapp("+15550100", "hello"))
        client = app_factory()

        response = signed_post(client, {"MessageSid": message.message_sid, "MessageStatus": "delivered"})

        assert response.status_code == 200
        stored = asyncio.run(message_store.get(message.id))
        assert stored.status == MessageStatus.DELIVERED

    def test_bad_signature_rejected(self, app_factory, manager, message_store):
        """A bad signature should be refused and change nothing."""
        from smsly_messaging.messaging import MessageStatus

        message = asyncio.run(manager.send_whatsapp("+15550100", "hello"))
        client = app_factory()

        response = client.post(
            "/api/twilio/whatsapp-status",
            data={"MessageSid": message.message_sid, "MessageStatus": "failed"},
            headers={"X-Twilio-Signature": "forged"},
        )

        assert response.status_code == 403
        stored = asyncio.run(message_store.get(message.id))
        assert stored.status == MessageStatus.SENT

    def test_failed_triggers_sms_fallback(self, app_factory, manager, provider, message_store):
        """A failed WhatsApp callback should send the SMS fallback once."""
        from smsly_messaging.messaging import MessageStatus

        message = asyncio.run(manager.send_whatsapp("+15550100", "hello"))
        client = app_factory()
        params = {
            "MessageSid": message.message_sid,
            "MessageStatus": "undelivered",
            "ErrorMessage": "Not a WhatsApp user",
        }

        assert signed_post(client, params).status_code == 200
        assert signed_post(client, params).status_code == 200

        stored = asyncio.run(message_store.get(message.id))
        assert stored.status == MessageStatus.FAILED
        assert stored.failure_reason == "Not a WhatsApp user"
        assert stored.fallback_message_id is not None
        assert len(provider.calls_for("sms")) == 1

    def test_unknown_sid_answers_ok(self, app_factory, provider):
        """Unknown messages should be ignored with a 200."""
        client = app_factory()

        response = signed_post(client, {"MessageSid": "MMunknown", "MessageStatus": "failed"})

        assert response.status_code == 200
        assert provider.calls == []

    def test_processing_errors_answer_ok(self, app_factory, manager):
        """Errors while applying a status should still answer 200."""
        async def broken(*args, **kwargs):
            raise RuntimeError("database unavailable")

        manager.update_message_status = broken
        client = app_factory()

        response = signed_post(client, {"MessageSid": "MM1", "MessageStatus": "sent"})

        assert response.status_code == 200

    def test_verification_can_be_disabled(self, app_factory, manager, message_store):
        """Unsigned callbacks are accepted when verification is off."""
        from smsly_messaging.messaging import MessageStatus

        message = asyncio.run(manager.send_whatsapp("+15550100", "hello"))
        client = app_factory(verify=False)

        response = client.post(
            "/api/twilio/whatsapp-status",
            data={"MessageSid": message.message_sid, "MessageStatus": "read"},
        )

        assert response.status_code == 200
        assert asyncio.run(message_store.get(message.id)).status == MessageStatus.DELIVERED

    def test_unreadable_body_answers_ok(self, app_factory, provider):
        """A body that cannot be parsed as a form should still answer 200."""
        client = app_factory()

        response = client.post(
            "/api/twilio/whatsapp-status",
            content=b"--no-boundary--",
            headers={"Content-Type": "multipart/form-data"},
        )

        assert response.status_code == 200
        assert provider.calls == []

    def test_request_id_bound_and_echoed(self, app_factory, manager):
        """The request id should be visible to logging while the callback is applied."""
        from smsly_messaging.logging import request_id_var

        seen = []

        async def record(*args, **kwargs):
            seen.append(request_id_var.get())

        manager.update_message_status = record
        client = app_factory()

        response = signed_post(
            client,
            {"MessageSid": "MM1", "MessageStatus": "sent"},
            **{"X-Request-ID": "req-123"},
        )

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-123"
        assert seen == ["req-123"]
        assert request_id_var.get() == ""

    def test_request_id_generated(self, app_factory):
        """A request id should be generated when the caller sends none."""
        client = app_factory()

        response = signed_post(client, {"MessageSid": "MMunknown", "MessageStatus": "sent"})

        assert response.headers["X-Request-ID"]
