"""
Password reset service.

Flow:
  1. request_password_reset(email): if the account exists, invalidate its
     earlier unused reset tokens, store the SHA-256 digest of a new random
     token and hand the raw token back for the emailed link. Unknown emails
     produce no row and no email; the router answers identically either way.
  2. reset_password(token, new_password): single-use consume. The password
     update, marking the token used and revoking every refresh token of the
     user are committed together, forcing re-authentication everywhere.
"""
import logging
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from authserver.config import settings
from authserver.core.exceptions import InputError, ResetTokenInvalidError
from authserver.core.security import hash_token, hash_secret, make_random_token, utc_now, as_utc
from authserver.models.password_reset import PasswordReset
from authserver.models.user import User
from authserver.services.token_service import ClientMeta, revoke_all_refresh_tokens

logger = logging.getLogger(__name__)

RESET_TOKEN_BYTES = 32
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt ignores everything past this


def build_reset_url(raw_token: str, email: str) -> str:
    query = urlencode({"token": raw_token, "email": email})
    return f"{settings.frontend_url.rstrip('/')}/reset-password?{query}"


def request_password_reset(
    db: Session,
    email: str,
    meta: Optional[ClientMeta] = None,
) -> Optional[tuple[User, str]]:
    """
    Returns (user, raw_token) when a token was created, otherwise None.
    The raw token must only ever travel inside the emailed link.
    """
    user = db.query(User).filter(User.email == email.lower()).first()
    if not user:
        return None

    meta = meta or ClientMeta()
    raw_token = make_random_token(RESET_TOKEN_BYTES)
    try:
        # Single active token per user: earlier unused links die now
        db.query(PasswordReset).filter(
            PasswordReset.user_id == user.id,
            PasswordReset.used == False,
        ).update({"used": True}, synchronize_session=False)

        db.add(PasswordReset(
            user_id=user.id,
            token_hash=hash_token(raw_token),
            expires_at=utc_now() + timedelta(minutes=settings.reset_token_ttl_minutes),
            used=False,
            user_agent=meta.user_agent,
            ip_address=meta.ip,
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    return user, raw_token


def reset_password(db: Session, raw_token: str, new_password: str) -> User:
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise InputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(new_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InputError(f"Password too long (bcrypt max {MAX_PASSWORD_BYTES} bytes)")

    record = (
        db.query(PasswordReset)
        .options(joinedload(PasswordReset.user))
        .filter(PasswordReset.token_hash == hash_token(raw_token))
        .order_by(PasswordReset.created_at.desc())
        .first()
    )
    if not record or record.used or as_utc(record.expires_at) < utc_now():
        raise ResetTokenInvalidError()

    user = record.user
    if not user:
        raise ResetTokenInvalidError("Invalid token")

    new_hash = hash_secret(new_password)
    try:
        # Conditional UPDATE: of two racing consumers only one sees a row change
        claimed = (
            db.query(PasswordReset)
            .filter(PasswordReset.id == record.id, PasswordReset.used == False)
            .update({"used": True}, synchronize_session=False)
        )
        if not claimed:
            db.rollback()
            raise ResetTokenInvalidError()

        user.password_hash = new_hash
        revoked = revoke_all_refresh_tokens(db, user.id, commit=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(f"Password reset for user {user.id}; revoked {revoked} refresh token(s)")
    db.refresh(user)
    return user
