"""
SMSLY Messaging Logging Module

Structured logging for the messaging core.
"""

from .exhaustive import (
    # Setup
    setup_logging,

    # Logging functions
    log_event,
    mask_phone,

    # Context
    request_id_var,
    service_name_var,
)

__all__ = [
    "setup_logging",
    "log_event",
    "mask_phone",
    "request_id_var",
    "service_name_var",
]
