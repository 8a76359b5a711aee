"""
Security utilities: secret hashing and JWT access token management.
Uses PyJWT (not python-jose).

Two hashers live here:
  - hash_token(): SHA-256 hex digest for high-entropy random secrets
    (refresh tokens, password reset tokens). Deterministic, so the digest can
    be looked up directly by equality.
  - hash_secret() / verify_secret(): bcrypt with a per-secret salt for
    low-entropy values (passwords, 6-digit OTP codes).
"""
import hashlib
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from jwt.exceptions import InvalidTokenError, ExpiredSignatureError
from passlib.context import CryptContext

from authserver.config import settings
from authserver.core.exceptions import (
    InputError,
    AccessTokenExpiredError,
    AccessTokenInvalidError,
)

# ── Secret Hashing ────────────────────────────────────────────────────────────
# deprecated="auto" means passlib will auto-upgrade old hashes on next login.
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_salt_rounds,
)


def hash_token(raw: str) -> str:
    if not isinstance(raw, str):
        raise InputError("Token must be a string")
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def make_random_token(num_bytes: int = 48) -> str:
    return secrets.token_hex(num_bytes)


def hash_secret(raw: str) -> str:
    if not isinstance(raw, str):
        raise InputError("Secret must be a string")
    return pwd_context.hash(raw)


def verify_secret(raw: str, hashed: str) -> bool:
    if not isinstance(raw, str):
        raise InputError("Secret must be a string")
    return pwd_context.verify(raw, hashed)


# ── Time helpers ──────────────────────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything this app writes is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value: str) -> timedelta:
    """
    Parse "15m", "1h", "7d", "30s" or a bare number of seconds.
    Raises ValueError on anything else so a bad ACCESS_TOKEN_EXPIRES fails loudly.
    """
    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


# ── JWT Access Tokens ─────────────────────────────────────────────────────────

def create_access_token(user) -> str:
    """
    Short-lived access token (default 15 min).
    Carries the user id as 'sub' plus email and role. Stateless: it cannot be
    revoked before it expires.

    PyJWT 2.x note: jwt.encode() returns str directly: no need to call .decode().
    """
    now = utc_now()
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role or "user",
        "type": "access",
        # Unique per token so two tokens minted in the same second still differ
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + parse_duration(settings.access_token_expires),
    }
    return jwt.encode(payload, settings.access_token_secret, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict:
    """
    Decodes and validates an access token.
    Raises AccessTokenExpiredError or AccessTokenInvalidError.
    """
    try:
        payload = jwt.decode(
            token,
            settings.access_token_secret,
            algorithms=[settings.algorithm],
        )
    except ExpiredSignatureError:
        raise AccessTokenExpiredError()
    except InvalidTokenError:
        raise AccessTokenInvalidError()

    if payload.get("type") != "access" or not payload.get("sub"):
        raise AccessTokenInvalidError()
    return payload
