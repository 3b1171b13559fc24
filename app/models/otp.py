import uuid
from sqlalchemy import Boolean, Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base, UTCDateTime, utcnow


class OTP(Base):
    """
    One-time codes for email verification and password reset.

    - Raw code is NEVER stored — only the bcrypt hash.
    - The "latest valid" code for a user is the newest active, unexpired row.
    - A successful verification deactivates every active code the user has,
      whatever its purpose. Rows are never deleted.
    - `attempts` is kept for future brute-force accounting; no flow increments it.
    """
    __tablename__ = "otps"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), nullable=False)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    otp_hash = Column(String, nullable=False)
    purpose = Column(String(50), default="email_verification", nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    requested_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # ── Relationships ──────────────────────────────────────────────────────────
    user = relationship("User", back_populates="otps")
