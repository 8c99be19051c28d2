"""
SMSLY Messaging Logging

Structured logging for the messaging core, built on structlog.

Usage:
    from smsly_messaging.logging import setup_logging, log_event

    # Setup at startup
    setup_logging(service_name="smsly-messaging")

    # Log events
    log_event("sms.sent", message_sid="SM123", phone=mask_phone("+15550100"))
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
service_name_var: ContextVar[str] = ContextVar("service_name", default="unknown")


# =============================================================================
# Setup Functions
# =============================================================================

def _add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("service", service_name_var.get())
    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog for a service.

    Args:
        service_name: Name of the service (e.g., "smsly-messaging")
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Whether to output JSON (for production)

    Returns:
        Logger bound to the service
    """
    service_name_var.set(service_name)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service_context,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()

    logger = structlog.get_logger(service_name)
    logger.info("logging.configured", service=service_name, level=level.upper())
    return logger


# =============================================================================
# Logging Functions
# =============================================================================

def log_event(
    event_type: str,
    level: str = "info",
    **kwargs
) -> None:
    """
    Log a structured domain event.

    Args:
        event_type: Type of event (e.g., "sms.sent", "otp.validated")
        level: Log level name
        **kwargs: Additional event data
    """
    logger = structlog.get_logger("events")
    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event_type, **kwargs)


def mask_phone(phone: Optional[str]) -> str:
    """Mask a phone number for log output, keeping the last four digits."""
    if not phone:
        return ""
    if len(phone) <= 4:
        return "*" * len(phone)
    return f"{'*' * (len(phone) - 4)}{phone[-4:]}"
