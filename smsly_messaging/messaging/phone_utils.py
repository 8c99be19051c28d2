"""
Phone Utilities
===============
Functions for phone number validation and normalization.
"""

import re

_E164 = re.compile(r'^\+[1-9]\d{1,14}$')


def normalize_phone(phone: str) -> str:
    """
    Normalize a phone number for storage and lookup.

    Whitespace anywhere in the number is removed, so "+1 555 0100" and
    "+15550100" address the same recipient.

    Args:
        phone: Raw phone number

    Returns:
        Phone number without whitespace
    """
    return "".join((phone or "").split())


def validate_e164(phone: str) -> bool:
    """
    Validate E.164 phone number format.

    Args:
        phone: Phone number

    Returns:
        True if valid E.164 format
    """
    return bool(_E164.match(normalize_phone(phone)))
