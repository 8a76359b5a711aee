import uuid
from sqlalchemy import Boolean, Column, String, TIMESTAMP, Uuid, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import false
from authserver.database import Base
from authserver.core.security import utc_now


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    # Always stored lower-cased
    email = Column(String(255), unique=True, nullable=False, index=True)
    # Nullable: OAuth-only accounts never set a password
    password_hash = Column(String, nullable=True)
    name = Column(String(100), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    role = Column(String(20), nullable=False, default="user", server_default="user")

    is_email_verified = Column(Boolean, default=False, server_default=false(), nullable=False)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    # ── Relationships ──────────────────────────────────────────────────────────
    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")
    email_otps = relationship("EmailOTP", back_populates="user", cascade="all, delete-orphan")
    password_resets = relationship("PasswordReset", back_populates="user", cascade="all, delete-orphan")


class Account(Base):
    """
    Link between a User and an identity provider.
    provider is "credentials", "github" or "google". For credentials the
    provider_account_id is the user's email. Rows are never updated.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_accounts_provider_account"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider = Column(String(50), nullable=False)
    provider_account_id = Column(String(255), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    user = relationship("User", back_populates="accounts")
