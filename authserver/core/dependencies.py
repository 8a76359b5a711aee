"""
FastAPI dependencies used across routers.
Keep this file lean: only auth/request-context dependencies go here.
Business logic belongs in services/.
"""
import uuid

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from authserver.database import get_db
from authserver.core.exceptions import AuthError, AccessTokenInvalidError
from authserver.core.security import decode_access_token
from authserver.models.user import User
from authserver.services.token_service import ClientMeta

# auto_error=False: a missing header becomes our own 401 {"error": ...}
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Validates the bearer access token and returns the authenticated User.

    Checks performed (in order):
    1. Authorization header carries a bearer token
    2. Token is a valid, unexpired JWT signed with our secret key, type 'access'
    3. 'sub' claim maps to a real user
    """
    if credentials is None:
        raise AuthError("Missing access token")

    payload = decode_access_token(credentials.credentials)
    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise AccessTokenInvalidError()

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise AuthError("User not found")
    return user


def get_client_meta(request: Request) -> ClientMeta:
    """User agent and client IP (first X-Forwarded-For hop when proxied)."""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() or (request.client.host if request.client else None)
    return ClientMeta(user_agent=request.headers.get("user-agent"), ip=ip or None)
