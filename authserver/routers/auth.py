"""
Auth router: OAuth login, token refresh, logout and session lookup.

Token model:
  - access token: short-lived JWT returned in the JSON body
  - refresh token: random secret, stored hashed, delivered ONLY as the
    HTTP-only refreshToken cookie and rotated on every /refresh
  - auth-session: signed cookie mirroring the identity (see core/session.py)
"""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from authserver.database import get_db
from authserver.core.cookies import REFRESH_COOKIE_NAME, set_refresh_cookie, clear_refresh_cookie
from authserver.core.dependencies import get_client_meta
from authserver.core.exceptions import RefreshTokenMissingError, RefreshTokenInvalidError
from authserver.core.rate_limiter import limiter
from authserver.core.security import create_access_token
from authserver.core.session import read_session, clear_session_cookie
from authserver.models.user import User
from authserver.schemas.auth import GoogleAuthRequest, GitHubAuthRequest, MessageResponse
from authserver.schemas.user import AuthResponse, UserOut, SessionResponse
from authserver.services import oauth_service, token_service
from authserver.services.oauth_service import GitHubClient, get_github_client

router = APIRouter()


def _signed_in(db: Session, request: Request, response: Response, user: User) -> AuthResponse:
    """Issue the access/refresh pair for an identity event and set the cookie."""
    refresh_raw = token_service.issue_refresh_token(db, user, get_client_meta(request))
    set_refresh_cookie(response, refresh_raw)
    return AuthResponse(access_token=create_access_token(user), user=UserOut.model_validate(user))


# ── OAuth ─────────────────────────────────────────────────────────────────────

@router.post("/google", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("20/minute")
async def google_login(
    request: Request,
    response: Response,
    body: GoogleAuthRequest,
    db: Session = Depends(get_db),
):
    user = oauth_service.login_with_google(
        db,
        email=body.email,
        google_id=body.google_id,
        name=body.name,
        image=body.image,
    )
    return _signed_in(db, request, response, user)


@router.post("/github", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("20/minute")
async def github_login(
    request: Request,
    response: Response,
    body: GitHubAuthRequest,
    db: Session = Depends(get_db),
    github: GitHubClient = Depends(get_github_client),
):
    user = await oauth_service.login_with_github(
        db,
        github,
        email=body.email,
        name=body.name,
        github_id=str(body.github_id) if body.github_id is not None else None,
        image=body.image,
        access_token=body.access_token,
    )
    return _signed_in(db, request, response, user)


# ── Token Refresh ─────────────────────────────────────────────────────────────

@router.post("/refresh", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("20/minute")
async def refresh(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Exchange the refreshToken cookie for a new access token.
    The presented refresh token is revoked and replaced in one transaction
    and the replacement is written back into the cookie.
    """
    raw = request.cookies.get(REFRESH_COOKIE_NAME)
    if not raw:
        raise RefreshTokenMissingError()

    record = token_service.verify_refresh_token(db, raw)
    if record is None:
        raise RefreshTokenInvalidError()

    user = record.user
    new_raw = token_service.rotate_refresh_token(db, raw, user.id, get_client_meta(request))
    set_refresh_cookie(response, new_raw)

    return AuthResponse(access_token=create_access_token(user), user=UserOut.model_validate(user))


# ── Logout ────────────────────────────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Revoke the presented refresh token (only that one) and clear both cookies.
    Succeeds even when no cookie or no matching record exists.
    """
    raw = request.cookies.get(REFRESH_COOKIE_NAME)
    if raw:
        token_service.revoke_refresh_token(db, raw)

    clear_session_cookie(response)
    clear_refresh_cookie(response)
    return {"message": "Logged out successfully"}


# ── Session ───────────────────────────────────────────────────────────────────

@router.get("/session", response_model=SessionResponse)
def current_session(request: Request):
    """The auth-session cookie's identity, or {"user": null} when anonymous."""
    return {"user": read_session(request)}
