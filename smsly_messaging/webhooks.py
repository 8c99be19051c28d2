"""
Twilio Status Webhooks
======================
FastAPI router receiving Twilio message status callbacks.

Callbacks are authenticated with X-Twilio-Signature before anything is
applied. Once authenticated, the endpoint always answers 200 so Twilio
does not retry on processing errors; those are logged instead.
"""

import uuid
from typing import Dict, Optional

import structlog
from fastapi import APIRouter, Request, Response

from smsly_messaging.config import WebhookConfig
from smsly_messaging.logging import request_id_var
from smsly_messaging.messaging.manager import MessagingManager
from smsly_messaging.messaging.models import MessageStatus
from smsly_messaging.providers.base import BaseProviderAdapter

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"
REQUEST_ID_HEADER = "X-Request-ID"


async def apply_status_callback(
    manager: MessagingManager,
    adapter: BaseProviderAdapter,
    params: Dict[str, str],
) -> None:
    """Apply one parsed status callback, falling back to SMS on WhatsApp failure."""
    event = adapter.parse_webhook(params)
    if not event.provider_message_id:
        logger.warning("Status callback without MessageSid", raw_status=event.raw_status)
        return

    status = MessageStatus(event.status.value)
    logger.info(
        "Status callback received",
        message_sid=event.provider_message_id,
        raw_status=event.raw_status,
        status=status.value,
    )

    reason = event.error_message or (
        f"Twilio error {event.error_code}" if event.error_code else f"Twilio status: {event.raw_status}"
    )
    await manager.update_message_status(
        event.provider_message_id,
        status,
        failure_reason=reason if status is MessageStatus.FAILED else None,
    )
    if status is MessageStatus.FAILED:
        await manager.handle_whatsapp_failure(event.provider_message_id, reason)


def create_twilio_webhook_router(
    manager: MessagingManager,
    adapter: BaseProviderAdapter,
    config: Optional[WebhookConfig] = None,
    prefix: str = "/api/twilio",
) -> APIRouter:
    """
    Create the Twilio status callback router.

    Args:
        manager: Messaging manager the statuses are applied through
        adapter: Provider adapter that validates and parses callbacks
        config: Webhook settings (signature verification, public URL)
        prefix: Route prefix

    Returns:
        FastAPI router with POST {prefix}/whatsapp-status
    """
    config = config or WebhookConfig()
    verify = config.verify_signatures and bool(getattr(adapter, "auth_token", None))
    if config.verify_signatures and not verify:
        logger.warning("Webhook signature verification disabled: no auth token configured")

    router = APIRouter(prefix=prefix, tags=["Twilio"])

    @router.post("/whatsapp-status")
    async def whatsapp_status(request: Request) -> Response:
        """Twilio webhook for message status updates."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        try:
            return await _handle(request)
        finally:
            request_id_var.reset(token)

    async def _handle(request: Request) -> Response:
        headers = {REQUEST_ID_HEADER: request_id_var.get()}
        try:
            form = await request.form()
        except Exception as e:
            logger.warning("Unreadable status callback body", error=str(e))
            return Response(status_code=200, headers=headers)
        params = {key: str(value) for key, value in form.items()}

        if verify:
            url = config.public_url or str(request.url)
            signature = request.headers.get(SIGNATURE_HEADER, "")
            if not adapter.validate_webhook(url, params, signature):
                logger.warning(
                    "Rejected status callback with invalid signature",
                    message_sid=params.get("MessageSid"),
                )
                return Response(status_code=403, headers=headers)

        try:
            await apply_status_callback(manager, adapter, params)
        except Exception as e:
            logger.error(
                "Error processing status callback",
                message_sid=params.get("MessageSid"),
                error=str(e),
                exc_info=True,
            )
        return Response(status_code=200, headers=headers)

    return router
