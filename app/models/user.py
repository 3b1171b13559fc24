import uuid
from sqlalchemy import Boolean, Column, String, JSON
from sqlalchemy.orm import relationship
from app.database import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)  # bcrypt hash, never plaintext
    is_email_verified = Column(Boolean, default=False, nullable=False)
    roles = Column(JSON, default=list, nullable=False)  # ordered list of role names

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # ── Relationships ──────────────────────────────────────────────────────────
    otps = relationship("OTP", back_populates="user", cascade="all, delete-orphan")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")
