"""
Refresh token store and rotation engine.

State per RefreshToken row:
  active → revoked   (explicit: rotation, logout, password reset; terminal)
  active → expired   (implicit: expires_at in the past; checked at query time)

Only the SHA-256 digest of a raw secret is ever persisted. The raw value is
returned to the router, which hands it to the client in the refreshToken
cookie and nowhere else.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from authserver.config import settings
from authserver.core.security import hash_token, make_random_token, utc_now
from authserver.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)

REFRESH_TOKEN_BYTES = 48


@dataclass
class ClientMeta:
    """Request metadata recorded alongside issued secrets."""
    user_agent: Optional[str] = None
    ip: Optional[str] = None


def _new_refresh_row(user_id, meta: Optional[ClientMeta]) -> tuple[RefreshToken, str]:
    meta = meta or ClientMeta()
    raw = make_random_token(REFRESH_TOKEN_BYTES)
    row = RefreshToken(
        token_hash=hash_token(raw),
        user_id=user_id,
        expires_at=utc_now() + timedelta(days=settings.refresh_token_tll_days),
        revoked=False,
        user_agent=meta.user_agent,
        ip_address=meta.ip,
    )
    return row, raw


def issue_refresh_token(db: Session, user, meta: Optional[ClientMeta] = None) -> str:
    """Persist a new refresh token for the user and return its raw secret."""
    row, raw = _new_refresh_row(user.id, meta)
    db.add(row)
    db.commit()
    return raw


def verify_refresh_token(db: Session, raw: Optional[str]) -> Optional[RefreshToken]:
    """
    Return the active record for a raw secret, or None.
    Revoked, expired and unknown secrets are indistinguishable to the caller.
    """
    if not raw:
        return None

    return (
        db.query(RefreshToken)
        .options(joinedload(RefreshToken.user))
        .filter(
            RefreshToken.token_hash == hash_token(raw),
            RefreshToken.revoked == False,
            RefreshToken.expires_at > utc_now(),
        )
        .first()
    )


def rotate_refresh_token(db: Session, old_raw: str, user_id, meta: Optional[ClientMeta] = None) -> str:
    """
    Revoke the presented secret and issue its replacement in ONE commit.

    Revoking an already-revoked secret is a no-op and a new secret is still
    issued. Reuse of a revoked secret is only logged here; family-wide
    revocation on reuse is not implemented.
    """
    try:
        revoked = (
            db.query(RefreshToken)
            .filter(
                RefreshToken.token_hash == hash_token(old_raw),
                RefreshToken.revoked == False,
            )
            .update({"revoked": True}, synchronize_session=False)
        )
        if not revoked:
            logger.warning(f"Rotation of a non-active refresh token for user {user_id}")

        row, new_raw = _new_refresh_row(user_id, meta)
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    return new_raw


def revoke_refresh_token(db: Session, raw: str) -> int:
    """Logout path: revoke the one presented secret. Returns rows touched."""
    count = (
        db.query(RefreshToken)
        .filter(RefreshToken.token_hash == hash_token(raw))
        .update({"revoked": True}, synchronize_session=False)
    )
    db.commit()
    return count


def revoke_all_refresh_tokens(db: Session, user_id, commit: bool = True) -> int:
    """
    Revoke every active refresh token of a user in one UPDATE.
    commit=False lets a caller fold this into a larger transaction.
    """
    count = (
        db.query(RefreshToken)
        .filter(RefreshToken.user_id == user_id, RefreshToken.revoked == False)
        .update({"revoked": True}, synchronize_session=False)
    )
    if commit:
        db.commit()
    return count
