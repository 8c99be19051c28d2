"""
Messaging Errors
================
Exception taxonomy for the messaging core.

Provider failures are not exceptions here: they are recorded as a failed
state on the record. Only programmer errors and wiring mistakes raise.
"""

from typing import Any, Optional


class MessagingError(Exception):
    """Base exception for the messaging core."""

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(message)


class MessageValidationError(MessagingError, ValueError):
    """Raised for invalid input before any provider call is made."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, details={"field": field} if field else None)


class ConfigurationError(MessagingError):
    """Raised when required configuration is missing or inconsistent."""
    pass


class StrategyNotRegisteredError(ConfigurationError):
    """Raised when no strategy is registered for a requested channel."""

    def __init__(self, channel: Any):
        self.channel = channel
        value = getattr(channel, "value", channel)
        super().__init__(f"No notification strategy registered for channel '{value}'")


class ProviderError(MessagingError):
    """Raised inside provider adapters for provider-side failures."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        error_code: Optional[str] = None,
        details: Any = None,
    ):
        self.provider = provider
        self.error_code = error_code
        super().__init__(f"[{provider}] {message}", details=details)
