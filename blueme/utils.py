"""
Utility functions shared by the Blue+Me services.
"""

import base64
import hmac
import hashlib
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from blueme.errors import ValidationError

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\d{10,15}$")
WHITESPACE = re.compile(r"\s+")


# =============================================================================
# Phone numbers
# =============================================================================

def normalize_phone(phone: str) -> str:
    """Strip all whitespace from a phone number. Idempotent."""
    return WHITESPACE.sub("", phone or "")


def validate_phone(phone: str) -> str:
    """
    Normalize a phone number and check it is 10-15 digits.

    Returns:
        The normalized phone number

    Raises:
        ValidationError: if the normalized value is not 10-15 digits
    """
    normalized = normalize_phone(phone)
    if not PHONE_PATTERN.match(normalized):
        raise ValidationError("Invalid phone number format. Please enter 10-15 digits.")
    return normalized


# =============================================================================
# Ids and timestamps
# =============================================================================

def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and a Z suffix."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def now_iso() -> str:
    return to_iso(utc_now())


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp. Returns None for empty or unparseable values."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(stored_hash: str, password: str) -> bool:
    """
    Check a password against a stored hash.
    Placeholder accounts carry an empty hash and never verify.
    """
    if not stored_hash or not password:
        return False
    return check_password_hash(stored_hash, password)


# =============================================================================
# HMAC signing
# =============================================================================

def b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def compute_hmac_signature(body: bytes, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of body using secret."""
    return hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256
    ).hexdigest()


def verify_hmac_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Verify HMAC-SHA256 signature.

    Args:
        body: Signed bytes
        signature: Hex-encoded signature
        secret: SESSION_SECRET

    Returns:
        True if signature is valid, False otherwise
    """
    logger.debug(f"Verifying HMAC signature over {len(body)} bytes")

    expected_signature = compute_hmac_signature(body, secret)

    # Constant-time comparison on bytes; header values may carry non-ASCII text
    is_valid = hmac.compare_digest(expected_signature.encode("ascii"), signature.encode("utf-8", "replace"))
    logger.debug(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid
