"""
OTP service: generation, storage (hashed), and verification of email codes.

Security design decisions:
  1. Raw OTP is NEVER stored: only the bcrypt hash.
  2. Every issuance revokes all still-active OTPs of the user first, on the
     registration path as well as on resend, so one code is valid at a time.
  3. OTPs expire after OTP_EXPIRY_MINUTES (server-side check in the lookup query).
  4. secrets.randbelow() is cryptographically secure (unlike random.randint).
  5. Each record tolerates OTP_MAX_ATTEMPTS wrong guesses; after that it is
     blocked for good and only a freshly issued code can verify.
"""
import logging
import secrets
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authserver.config import settings
from authserver.core.exceptions import (
    InputError,
    NotFoundError,
    OTPExpiredOrInvalidError,
    OTPAttemptsExceededError,
    InvalidOTPError,
)
from authserver.core.security import hash_secret, verify_secret, utc_now
from authserver.models.otp import EmailOTP
from authserver.models.user import User
from authserver.services.email_service import EmailService

logger = logging.getLogger(__name__)


def generate_otp() -> str:
    """6 digits, zero-padded: 000000–999999."""
    return f"{secrets.randbelow(1_000_000):06d}"


def revoke_active_otps(db: Session, user_id, commit: bool = True) -> int:
    count = (
        db.query(EmailOTP)
        .filter(
            EmailOTP.user_id == user_id,
            EmailOTP.used == False,
            EmailOTP.revoked == False,
        )
        .update({"revoked": True}, synchronize_session=False)
    )
    if commit:
        db.commit()
    return count


def create_otp_record(db: Session, user: User) -> str:
    """
    Revoke the user's active OTPs, store the hash of a new one, return it raw.
    Both writes land in one commit.
    """
    raw_otp = generate_otp()
    try:
        revoke_active_otps(db, user.id, commit=False)
        db.add(EmailOTP(
            email=user.email,
            user_id=user.id,
            otp_hash=hash_secret(raw_otp),
            expires_at=utc_now() + timedelta(minutes=settings.otp_expiry_minutes),
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return raw_otp


async def issue_otp(db: Session, mailer: EmailService, user: User) -> str:
    """
    Create a fresh OTP for the user and email it.
    Raises EmailDeliveryError when the code could not be sent; the record
    stays in place and the caller decides whether to revoke it.
    """
    raw_otp = create_otp_record(db, user)
    await mailer.send_otp_email(user.email, raw_otp, name=user.name)
    return raw_otp


def verify_otp(db: Session, email: str, user_id, otp: str) -> User:
    """
    Check a submitted code against the user's newest active OTP.

    A wrong code bumps the attempt counter with a single conditional UPDATE
    (attempts = attempts + 1 WHERE attempts < cap), so parallel guesses are
    all counted and can never push the record past the cap. A correct code
    claims the record the same way, and marks the user verified in that
    commit.
    """
    record = (
        db.query(EmailOTP)
        .filter(
            EmailOTP.email == email.lower(),
            EmailOTP.user_id == user_id,
            EmailOTP.used == False,
            EmailOTP.revoked == False,
            EmailOTP.expires_at > utc_now(),
        )
        .order_by(EmailOTP.created_at.desc())
        .first()
    )
    if not record:
        raise OTPExpiredOrInvalidError()

    if record.attempts >= settings.otp_max_attempts:
        raise OTPAttemptsExceededError()

    if not verify_secret(otp, record.otp_hash):
        try:
            counted = (
                db.query(EmailOTP)
                .filter(
                    EmailOTP.id == record.id,
                    EmailOTP.attempts < settings.otp_max_attempts,
                )
                .update({"attempts": EmailOTP.attempts + 1}, synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        if not counted:
            raise OTPAttemptsExceededError()
        logger.info(f"Wrong OTP for user {user_id}")
        raise InvalidOTPError()

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User")

    try:
        claimed = (
            db.query(EmailOTP)
            .filter(
                EmailOTP.id == record.id,
                EmailOTP.used == False,
                EmailOTP.revoked == False,
                EmailOTP.attempts < settings.otp_max_attempts,
            )
            .update({"used": True, "attempts": 0}, synchronize_session=False)
        )
        if not claimed:
            db.rollback()
            raise OTPExpiredOrInvalidError()

        user.is_email_verified = True
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(user)
    return user


async def resend_otp(db: Session, mailer: EmailService, email: str, user_id) -> str:
    """Issue a replacement code for a user whose email is still unverified."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.email != email.lower():
        raise NotFoundError("User")
    if user.is_email_verified:
        raise InputError("Email already verified!")

    return await issue_otp(db, mailer, user)
