import uuid
from sqlalchemy import Column, Integer, String, Text, ForeignKey
from app.database import Base, UTCDateTime, utcnow

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class EmailOutbox(Base):
    """
    Durable record of every transactional email.

    Rows are written in the same transaction as the OTP they announce and
    delivered after the HTTP response. `body` holds the rendered message
    (including the plaintext code) only while the row is pending; it is
    cleared once the row is sent or has failed for good.
    """
    __tablename__ = "email_outbox"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), nullable=False)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    recipient = Column(String(255), nullable=False)
    template = Column(String(50), nullable=False)  # "verification" | "password_reset"
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False, default="")
    status = Column(String(20), default=STATUS_PENDING, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    sent_at = Column(UTCDateTime, nullable=True)
