"""
Firebase Push Provider
======================
Push notification delivery through Firebase Cloud Messaging.
"""

import asyncio
import json
import os
from typing import Any, Dict, Optional

import structlog
from firebase_admin import App, credentials, initialize_app, messaging
from firebase_admin.exceptions import FirebaseError

from smsly_messaging.config import FirebaseConfig
from smsly_messaging.errors import ConfigurationError
from smsly_messaging.providers.base import ProviderStatus, PushProvider, SendResult

logger = structlog.get_logger(__name__)

# FCM truncates longer bodies on most devices
MAX_BODY_LENGTH = 240


class FirebasePushProvider(PushProvider):
    """Firebase Cloud Messaging provider addressed by device token."""

    name = "firebase"

    def __init__(self, config: FirebaseConfig, app: Optional[App] = None):
        self.config = config
        self._app = app

    def initialize(self) -> None:
        """Initialize the Firebase Admin app from the service account."""
        if self._app is not None:
            return
        if not self.config.project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID configuration is required")
        if not self.config.service_account:
            raise ConfigurationError("FIREBASE_SERVICE_ACCOUNT configuration is required")

        source = self.config.service_account
        cert: Any = source if os.path.exists(source) else json.loads(source)
        self._app = initialize_app(
            credentials.Certificate(cert),
            options={"projectId": self.config.project_id},
            name=f"smsly_messaging_{self.config.project_id}",
        )
        logger.info("Firebase app initialized", project_id=self.config.project_id)

    def _build_message(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]],
    ) -> messaging.Message:
        return messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body[:MAX_BODY_LENGTH]),
            data={key: str(value) for key, value in (data or {}).items()},
        )

    async def send_to_token(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> SendResult:
        """Send a push notification to one device token."""
        if self._app is None:
            self.initialize()

        message = self._build_message(token, title, body, data)
        try:
            # The Admin SDK call is blocking
            response = await asyncio.to_thread(messaging.send, message, app=self._app)
        except FirebaseError as e:
            logger.error("FCM send failed", error_code=e.code, error=str(e))
            return SendResult.failed(str(e), error_code=str(e.code))
        except ValueError as e:
            logger.error("FCM message rejected", error=str(e))
            return SendResult.failed(str(e))

        logger.info("FCM message sent", message_name=response)
        return SendResult(
            success=True,
            provider_message_id=response,
            status=ProviderStatus.SENT,
        )
