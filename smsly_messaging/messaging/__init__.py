"""
Messaging
=========
SMS/WhatsApp messages, OTP challenges and the manager that owns them.
"""

from .models import Message, MessageChannel, MessageStatus, Otp
from .phone_utils import normalize_phone, validate_e164
from .otp import codes_match, generate_otp_code
from .stores import InMemoryMessageStore, InMemoryOtpStore, MessageStore, OtpStore
from .manager import MessagingManager

__all__ = [
    # Models
    "Message",
    "MessageChannel",
    "MessageStatus",
    "Otp",
    # Phone
    "normalize_phone",
    "validate_e164",
    # Codes
    "codes_match",
    "generate_otp_code",
    # Stores
    "MessageStore",
    "OtpStore",
    "InMemoryMessageStore",
    "InMemoryOtpStore",
    # Manager
    "MessagingManager",
]
