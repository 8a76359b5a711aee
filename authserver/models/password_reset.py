import uuid
from sqlalchemy import Boolean, Column, String, TIMESTAMP, Uuid, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import false
from authserver.database import Base
from authserver.core.security import utc_now


class PasswordReset(Base):
    """
    Single-use password reset token, stored as a SHA-256 digest.
    A new request marks every unused row of the user as used, so only the
    latest emailed link can ever succeed.
    """
    __tablename__ = "password_resets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    token_hash = Column(String(64), nullable=False, index=True)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    used = Column(Boolean, default=False, server_default=false(), nullable=False)
    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(100), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    user = relationship("User", back_populates="password_resets")
