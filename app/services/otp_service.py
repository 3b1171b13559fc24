"""
OTP service: generation, storage (hashed), lookup and single-use consumption.

Security design decisions:
  1. Raw OTP is NEVER stored or logged — only the bcrypt hash.
  2. OTPs expire after OTP_EXPIRE_MINUTES (10 by default).
  3. A user may request a new OTP at most once per OTP_RESEND_COOLDOWN_SECONDS.
     The check is read-then-write without a lock, so two concurrent requests
     can both pass it.
  4. secrets.randbelow() is cryptographically secure (unlike random.randint).
  5. A successful verification burns the matched OTP and every other active
     OTP of the same user, whatever its purpose.
"""
import logging
import secrets
from datetime import timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import BadRequestException, OTPRateLimitException
from app.core.security import pwd_context
from app.database import utcnow
from app.models.otp import OTP

logger = logging.getLogger(__name__)


class OTPPurpose(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


def generate_otp() -> str:
    """
    4-digit numeric code, uniform over 1000–9999.
    secrets.randbelow(9000) gives 0–8999, +1000 shifts it into range.
    """
    return str(secrets.randbelow(9000) + 1000)


def generate_and_save_otp(
    db: Session,
    user_id: str,
    purpose: str = OTPPurpose.EMAIL_VERIFICATION.value,
) -> str:
    """
    Creates a new OTP record and returns the raw code for email delivery.
    Does NOT commit — the caller commits it with the outbox row.

    Raises OTPRateLimitException if the user's last request (any purpose) is
    younger than the cooldown.
    """
    now = utcnow()
    last_request = (
        db.query(OTP)
        .filter(OTP.user_id == user_id)
        .order_by(OTP.requested_at.desc())
        .first()
    )
    cooldown = timedelta(seconds=settings.otp_resend_cooldown_seconds)
    if last_request is not None and now - last_request.requested_at < cooldown:
        logger.info(f"OTP requested again within cooldown for user {user_id}")
        raise OTPRateLimitException()

    raw_otp = generate_otp()
    record = OTP(
        user_id=user_id,
        otp_hash=pwd_context.hash(raw_otp),
        purpose=purpose,
        expires_at=now + timedelta(minutes=settings.otp_expire_minutes),
        requested_at=now,
        is_active=True,
    )
    db.add(record)
    db.flush()

    logger.info(f"OTP {record.id} issued for user {user_id} ({purpose})")
    return raw_otp


def find_latest_valid_otp(db: Session, user_id: str) -> Optional[OTP]:
    """Newest active, unexpired OTP of the user, regardless of purpose."""
    return (
        db.query(OTP)
        .filter(
            OTP.user_id == user_id,
            OTP.is_active == True,  # noqa: E712
            OTP.expires_at >= utcnow(),
        )
        .order_by(OTP.requested_at.desc())
        .first()
    )


def validate_otp(record: OTP, otp: str) -> None:
    if not record.is_active:
        raise BadRequestException("OTP has already been used")
    if not pwd_context.verify(otp, record.otp_hash):
        raise BadRequestException("Invalid OTP")


def deactivate_user_otps(db: Session, user_id: str) -> None:
    db.query(OTP).filter(
        OTP.user_id == user_id,
        OTP.is_active == True,  # noqa: E712
    ).update({"is_active": False}, synchronize_session=False)


def consume_otp(db: Session, user_id: str, otp: str) -> OTP:
    """
    Finds the latest valid OTP, checks the code and deactivates it together
    with every other active OTP of the user. Does NOT commit.
    """
    record = find_latest_valid_otp(db, user_id)
    if record is None:
        raise BadRequestException("No valid OTP found")

    try:
        validate_otp(record, otp)
    except BadRequestException as exc:
        logger.info(f"OTP verification failed for user {user_id}: {exc.detail}")
        raise

    record.is_active = False
    deactivate_user_otps(db, user_id)
    return record
