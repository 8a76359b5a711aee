import uuid
from sqlalchemy import Boolean, Column, Integer, String, TIMESTAMP, Uuid, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import false
from authserver.database import Base
from authserver.core.security import utc_now


class EmailOTP(Base):
    """
    Stores hashed OTPs for email verification.

    Security notes:
    - Raw OTP is NEVER stored: only the bcrypt hash.
    - Issuing a new OTP revokes every still-active OTP of the same user, so at
      most one code can verify at any time.
    - attempts counts failed verifications; at OTP_MAX_ATTEMPTS the row is
      blocked and a new code must be requested.
    """
    __tablename__ = "email_otps"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String(255), nullable=False, index=True)
    otp_hash = Column(String, nullable=False)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    used = Column(Boolean, default=False, server_default=false(), nullable=False)
    revoked = Column(Boolean, default=False, server_default=false(), nullable=False)
    attempts = Column(Integer, default=0, server_default="0", nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    user = relationship("User", back_populates="email_otps")
