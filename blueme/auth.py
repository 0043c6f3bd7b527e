"""
Session/identity gate.

Credentials are a normalized phone number plus password. A successful login
yields a signed session token (HMAC-SHA256 over a base64url JSON payload)
that every other endpoint resolves back to the caller's identity.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Annotated, Optional

from fastapi import Cookie, Depends, Header

from blueme.config import settings
from blueme.errors import AuthenticationError, AuthorizationError, ValidationError
from blueme.storage import RecordStore
from blueme.users import create_user, get_user_by_phone, set_credentials
from blueme.utils import (
    b64decode,
    b64encode,
    compute_hmac_signature,
    hash_password,
    normalize_phone,
    validate_phone,
    verify_hmac_signature,
    verify_password,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Minimal identity carried in the session token."""
    id: str
    phone: str
    name: str


# =============================================================================
# Registration and credential check
# =============================================================================

def register(store: RecordStore, phone: str, password: str, name: str) -> dict:
    """
    Register a new account.

    A phone number that only exists as a placeholder (added as a contact by
    someone else, empty password) is claimed by the registering user.

    Raises:
        ValidationError: missing fields, bad phone, or phone already registered
    """
    if not phone or not password or not name or not name.strip():
        raise ValidationError("Phone number, password, and name are required")

    normalized = validate_phone(phone)
    existing = get_user_by_phone(store, normalized)

    if existing is not None and existing.get("password"):
        raise ValidationError("User with this phone number already exists")

    hashed = hash_password(password)
    if existing is not None:
        logger.info(f"Claiming placeholder account {existing['id']}")
        return set_credentials(store, existing["id"], hashed, name.strip())

    return create_user(store, phone=normalized, password=hashed, name=name.strip())


def authenticate(store: RecordStore, phone: Optional[str], password: Optional[str]) -> Identity:
    """
    Verify phone + password and return the caller's identity.

    Every failure raises the same AuthenticationError so callers cannot tell
    an unknown phone from a wrong password.
    """
    if not phone or not password:
        raise AuthenticationError()

    user = get_user_by_phone(store, normalize_phone(phone))
    if user is None:
        logger.debug("Login failed: no account for phone")
        raise AuthenticationError()

    if not verify_password(user.get("password", ""), password):
        logger.debug("Login failed: password mismatch")
        raise AuthenticationError()

    return Identity(id=user["id"], phone=user["phone"], name=user["name"])


# =============================================================================
# Session tokens
# =============================================================================

def issue_token(identity: Identity, secret: Optional[str] = None, max_age: Optional[int] = None,
                now: Optional[float] = None) -> str:
    """Create a signed session token "<payload>.<signature>"."""
    secret = secret or settings.SESSION_SECRET
    max_age = settings.SESSION_MAX_AGE if max_age is None else max_age
    issued = int(time.time() if now is None else now)

    claims = asdict(identity)
    claims["exp"] = issued + max_age
    payload = b64encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
    signature = compute_hmac_signature(payload.encode("ascii"), secret)
    return f"{payload}.{signature}"


def verify_token(token: Optional[str], secret: Optional[str] = None, now: Optional[float] = None) -> Identity:
    """
    Validate a session token and return the identity it carries.

    Raises:
        AuthorizationError: missing, tampered, malformed or expired token
    """
    if not token:
        raise AuthorizationError()

    secret = secret or settings.SESSION_SECRET
    payload, _, signature = token.partition(".")
    if not payload or not signature:
        raise AuthorizationError()

    if not verify_hmac_signature(payload.encode("ascii", "replace"), signature, secret):
        logger.warning("Rejected session token with invalid signature")
        raise AuthorizationError()

    try:
        claims = json.loads(b64decode(payload))
        identity = Identity(id=claims["id"], phone=claims["phone"], name=claims["name"])
        expires = int(claims["exp"])
    except (ValueError, KeyError, TypeError):
        logger.warning("Rejected malformed session token")
        raise AuthorizationError() from None

    if expires <= (time.time() if now is None else now):
        raise AuthorizationError("Session expired")

    return identity


# =============================================================================
# FastAPI dependencies
# =============================================================================

def get_session_token(
    session: Annotated[Optional[str], Cookie(alias=settings.SESSION_COOKIE_NAME)] = None,
    authorization: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """Session token from the session cookie, or a Bearer Authorization header."""
    if session:
        return session
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


def get_current_identity(token: Annotated[Optional[str], Depends(get_session_token)]) -> Identity:
    return verify_token(token)


def get_current_user_id(identity: Annotated[Identity, Depends(get_current_identity)]) -> str:
    return identity.id
