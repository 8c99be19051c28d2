"""
OTP Codes
=========
Numeric code generation and comparison.
"""

import hmac
import secrets


def generate_otp_code(length: int = 4) -> str:
    """
    Generate a fixed-width numeric code.

    Leading zeros are kept so every code has exactly ``length`` digits.
    """
    if length < 1:
        raise ValueError("OTP length must be positive")
    return str(secrets.randbelow(10 ** length)).zfill(length)


def codes_match(expected: str, provided: str) -> bool:
    """Compare two codes in constant time."""
    return hmac.compare_digest(
        (expected or "").strip().encode(),
        (provided or "").strip().encode(),
    )
