"""
Messaging Configuration
=======================
Configuration for providers, the messaging manager and persistence.

Defaults are read from the environment when the dataclass is instantiated.
"""

import os
from dataclasses import dataclass, field

from smsly_messaging.errors import ConfigurationError


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TwilioConfig:
    """Credentials and endpoint for the Twilio REST API."""
    account_sid: str = field(default_factory=lambda: os.environ.get("TWILIO_ACCOUNT_SID", ""))
    auth_token: str = field(default_factory=lambda: os.environ.get("TWILIO_AUTH_TOKEN", ""))
    messaging_service_sid: str = field(
        default_factory=lambda: os.environ.get("TWILIO_MESSAGING_SERVICE_SID", "")
    )
    api_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "TWILIO_API_BASE_URL", "https://api.twilio.com/2010-04-01"
        )
    )
    timeout: float = 30.0


@dataclass
class FirebaseConfig:
    """Firebase Cloud Messaging project settings."""
    project_id: str = field(default_factory=lambda: os.environ.get("FIREBASE_PROJECT_ID", ""))
    # JSON document or a path to the service account file
    service_account: str = field(
        default_factory=lambda: os.environ.get("FIREBASE_SERVICE_ACCOUNT", "")
    )


@dataclass
class MessagingConfig:
    """Settings for the messaging manager and the OTP lifecycle."""
    phone_number: str = field(default_factory=lambda: os.environ.get("TWILIO_PHONE_NUMBER", ""))
    whatsapp_sender: str = field(
        default_factory=lambda: os.environ.get("TWILIO_WHATSAPP_SENDER", "")
    )
    sender_name: str = field(default_factory=lambda: os.environ.get("TWILIO_SENDER_NAME", "Sender"))
    status_callback_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "TWILIO_STATUS_CALLBACK_BASE_URL", "https://localhost:7000"
        )
    )
    status_callback_path: str = "/api/twilio/whatsapp-status"
    otp_template_id: str = field(
        default_factory=lambda: os.environ.get("TWILIO_OTP_TEMPLATE_SID", "")
    )
    otp_length: int = 4
    otp_expiry_minutes: int = 5

    @property
    def status_callback_url(self) -> str:
        return f"{self.status_callback_base_url.rstrip('/')}{self.status_callback_path}"

    def validate(self) -> "MessagingConfig":
        """Fail fast on missing sender configuration."""
        if not self.phone_number:
            raise ConfigurationError("TWILIO_PHONE_NUMBER configuration is required")
        if not self.whatsapp_sender:
            raise ConfigurationError("TWILIO_WHATSAPP_SENDER configuration is required")
        if self.otp_length < 4:
            raise ConfigurationError("OTP length must be at least 4 digits")
        if self.otp_expiry_minutes <= 0:
            raise ConfigurationError("OTP expiry must be positive")
        return self


@dataclass
class WebhookConfig:
    """Inbound status-callback settings."""
    verify_signatures: bool = field(
        default_factory=lambda: _env_bool("TWILIO_VERIFY_WEBHOOKS", True)
    )
    # URL Twilio was configured to call; signatures are computed over it
    public_url: str = field(default_factory=lambda: os.environ.get("TWILIO_WEBHOOK_PUBLIC_URL", ""))


@dataclass
class DatabaseConfig:
    """Async database connection settings."""
    url: str = field(
        default_factory=lambda: os.environ.get(
            "DATABASE_URL", "postgresql+asyncpg://localhost/smsly_messaging"
        )
    )
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False
