import uuid
from sqlalchemy import Boolean, Column, String, TIMESTAMP, Uuid, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import false
from authserver.database import Base
from authserver.core.security import utc_now


class RefreshToken(Base):
    """
    One row per issued refresh secret.

    Security notes:
    - Only the SHA-256 digest of the raw secret is stored.
    - Once revoked=True the row is inert forever; lookups treat it as absent.
    - Rows are never deleted: they double as an audit trail of sessions.
    """
    __tablename__ = "refresh_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    revoked = Column(Boolean, default=False, server_default=false(), nullable=False)
    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(100), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    user = relationship("User", back_populates="refresh_tokens")
