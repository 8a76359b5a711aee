"""
Cookie helpers for the refresh token.

The raw refresh secret only ever leaves the server through this cookie:
HTTP-only, same-site lax, path "/", secure in production.
"""
from fastapi import Response

from authserver.config import settings

REFRESH_COOKIE_NAME = "refreshToken"


def cookie_profile() -> dict:
    return {
        "path": "/",
        "secure": settings.is_production,
        "httponly": True,
        "samesite": "lax",
    }


def set_refresh_cookie(response: Response, raw_token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        raw_token,
        max_age=settings.refresh_token_tll_days * 24 * 60 * 60,
        **cookie_profile(),
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(REFRESH_COOKIE_NAME, **cookie_profile())
