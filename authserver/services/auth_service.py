"""
Auth service: higher-level auth operations that combine multiple lower-level services.
Keeps routers thin: routers only handle HTTP, services handle logic.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from authserver.core.exceptions import (
    AuthError,
    ConflictError,
    EmailDeliveryError,
    EmailNotVerifiedError,
    InternalError,
    NotFoundError,
)
from authserver.core.security import pwd_context, hash_secret, verify_secret
from authserver.models.user import User, Account
from authserver.services import otp_service
from authserver.services.email_service import EmailService

logger = logging.getLogger(__name__)

# Pre-computed bcrypt hash used ONLY for constant-time comparison when the user
# doesn't exist: keeps "unknown email" as slow as "wrong password".
# Generated once at module load. Never stored anywhere or used for real auth.
_DUMMY_HASH: str = pwd_context.hash("__dummy_timing_prevention__")

CREDENTIALS_PROVIDER = "credentials"


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.lower()).first()


def create_credentials_user(db: Session, name: Optional[str], email: str, password: str) -> User:
    """
    Creates an unverified user plus its credentials Account in one commit.
    Raises ConflictError when the email is taken.
    """
    email = email.lower()
    if get_user_by_email(db, email):
        raise ConflictError("User already exists")

    try:
        new_user = User(
            name=name,
            email=email,
            password_hash=hash_secret(password),
            is_email_verified=False,
        )
        db.add(new_user)
        db.flush()  # flush to get the UUID assigned without committing

        db.add(Account(
            user_id=new_user.id,
            provider=CREDENTIALS_PROVIDER,
            provider_account_id=email,
        ))
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email
        db.rollback()
        raise ConflictError("User already exists")

    db.refresh(new_user)
    return new_user


async def register_user(
    db: Session,
    mailer: EmailService,
    name: Optional[str],
    email: str,
    password: str,
) -> User:
    """
    Registration = user + account, then an OTP by email.
    The OTP email is mandatory: if it cannot be sent the issued code is
    revoked and the request fails, but the account stays so the user can
    ask for a resend.
    """
    user = create_credentials_user(db, name, email, password)

    try:
        await otp_service.issue_otp(db, mailer, user)
    except EmailDeliveryError:
        logger.error(f"Failed to send the OTP email to user {user.id}")
        otp_service.revoke_active_otps(db, user.id)
        raise InternalError("Failed to send OTP email")

    return user


def authenticate_user(db: Session, email: str, password: str) -> User:
    """
    Validates credentials for the login endpoint.

    Unknown or OAuth-only accounts → 404, wrong password → 401,
    unverified email → 403. A bcrypt comparison runs in every branch so the
    response time does not reveal which case occurred.
    """
    user = get_user_by_email(db, email)
    has_password = bool(user and user.password_hash)
    password_ok = verify_secret(password, user.password_hash if has_password else _DUMMY_HASH)

    if not has_password:
        raise NotFoundError(detail="Invalid email or password.")
    if not password_ok:
        raise AuthError("Invalid credentials.")
    if not user.is_email_verified:
        raise EmailNotVerifiedError()
    return user


def find_or_create_oauth_user(
    db: Session,
    provider: str,
    provider_account_id: str,
    email: str,
    name: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> User:
    """
    Resolve an OAuth identity to a local user.

    New email → create a verified user and its provider Account together.
    Known email → link the provider Account if this user has none yet.
    Unique-key collisions (e.g. the provider id already belongs to another
    user) surface as ConflictError.
    """
    email = email.lower()
    user = get_user_by_email(db, email)

    try:
        if not user:
            user = User(
                email=email,
                name=name,
                avatar_url=avatar_url,
                # Provider-asserted emails are treated as verified
                is_email_verified=True,
            )
            db.add(user)
            db.flush()
            db.add(Account(user_id=user.id, provider=provider, provider_account_id=provider_account_id))
            db.commit()
        else:
            linked = (
                db.query(Account)
                .filter(Account.user_id == user.id, Account.provider == provider)
                .first()
            )
            if not linked:
                db.add(Account(user_id=user.id, provider=provider, provider_account_id=provider_account_id))
                db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User already exists")
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(user)
    return user
