"""
Signed session cookie ("auth-session").

Mirrors the authenticated identity {id, email, name, role} for clients that
want a cookie-readable session. It has its own TTL and lifecycle, independent
of the access/refresh pair, and is cleared explicitly on logout.
"""
from datetime import timedelta
from typing import Optional

import jwt
from jwt.exceptions import InvalidTokenError
from fastapi import Request, Response

from authserver.config import settings
from authserver.core.cookies import cookie_profile
from authserver.core.security import utc_now

SESSION_COOKIE_NAME = "auth-session"


def _max_age_seconds() -> int:
    return settings.session_max_age_days * 24 * 60 * 60


def create_session_token(user) -> str:
    now = utc_now()
    payload = {
        "user": {
            "id": str(user.id),
            "email": user.email,
            "name": user.name,
            "role": user.role or "user",
        },
        "iat": now,
        "exp": now + timedelta(seconds=_max_age_seconds()),
    }
    return jwt.encode(payload, settings.session_signing_key, algorithm=settings.algorithm)


def verify_session_token(token: Optional[str]) -> Optional[dict]:
    """Bad signature, expiry or a missing token all mean "no session"."""
    if not token:
        return None
    try:
        decoded = jwt.decode(
            token,
            settings.session_signing_key,
            algorithms=[settings.algorithm],
        )
    except InvalidTokenError:
        return None
    return decoded.get("user") or None


def set_session_cookie(response: Response, user) -> str:
    token = create_session_token(user)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=_max_age_seconds(),
        **cookie_profile(),
    )
    return token


def read_session(request: Request) -> Optional[dict]:
    return verify_session_token(request.cookies.get(SESSION_COOKIE_NAME))


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, **cookie_profile())
