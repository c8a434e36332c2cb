"""TOTP utilities for answering challenges of a known test token.

Used by the terminal login host (``mfabridge login --totp-secret``) to
generate codes for a TOTP token whose secret the operator holds.
"""

import time

import pyotp

from mfabridge.logging import get_logger

LOG = get_logger(__name__)


def _get_totp(secret: str) -> pyotp.TOTP:
    """Get a TOTP object from the secret.

    Raises:
        ValueError: If secret is invalid.
    """
    if not secret:
        raise ValueError("Invalid TOTP secret: empty")
    try:
        totp = pyotp.TOTP(secret)
        # pyotp decodes lazily; force validation of the base32 secret now
        totp.byte_secret()
    except Exception as exc:
        raise ValueError(f"Invalid TOTP secret: {exc}") from exc
    return totp


def generate_totp(secret: str) -> str:
    """Generate the current TOTP code for a secret.

    Args:
        secret: Base32-encoded TOTP secret.

    Returns:
        6-digit TOTP code as a string.

    Raises:
        ValueError: If secret is invalid.
    """
    code = _get_totp(secret).now()
    LOG.debug("totp_generated", code_length=len(code))
    return code


def get_totp_remaining_seconds() -> int:
    """Get seconds remaining until the current 30-second TOTP period expires."""
    return 30 - int(time.time() % 30)
