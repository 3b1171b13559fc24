"""
Auth service: signup, login, OTP verification, resend and password reset.
Keeps routers thin — routers only handle HTTP, services handle logic.

Each function takes the request's Session and commits at most once, so a
multi-step flow either lands completely or not at all. Functions that queue
an email return the outbox message id; the router schedules delivery.
"""
import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from jwt.exceptions import InvalidTokenError

from app.core.exceptions import (
    BadRequestException,
    ConflictException,
    CredentialsException,
    NotFoundException,
)
from app.core.security import (
    PasswordResetClaims,
    create_password_reset_token,
    decode_token,
    hash_password,
    pwd_context,
    verify_password,
)
from app.models.user import User
from app.services import email_service, otp_service, token_service
from app.services.otp_service import OTPPurpose

logger = logging.getLogger(__name__)

# Pre-computed bcrypt hash used ONLY for comparison when the email is unknown,
# so both login failure paths spend the same hashing time.
_DUMMY_HASH: str = pwd_context.hash("__dummy_timing_prevention__")


def _user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "roles": list(user.roles or []),
        "isverified": bool(user.is_email_verified),
    }


def find_user_by_id(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundException("User")
    return user


# ── Signup ────────────────────────────────────────────────────────────────────

def sign_up(
    db: Session,
    first_name: str,
    last_name: str,
    username: str,
    email: str,
    password: str,
    roles: list[str],
) -> tuple[dict, str]:
    """
    Creates an unverified user, its first token pair, its first verification
    OTP and the outbox row announcing it, all in one commit.
    Returns (response data, outbox message id).
    """
    existing = (
        db.query(User)
        .filter(or_(User.email == email, User.username == username))
        .all()
    )
    email_taken = any(u.email == email for u in existing)
    username_taken = any(u.username == username for u in existing)
    if email_taken and username_taken:
        raise ConflictException("Both email and username already exist")
    if email_taken:
        raise ConflictException("Email already exists")
    if username_taken:
        raise ConflictException("Username already exists")

    user = User(
        first_name=first_name,
        last_name=last_name,
        username=username,
        email=email,
        password=hash_password(password),
        roles=list(roles),
        is_email_verified=False,
    )
    db.add(user)
    db.flush()  # assigns the id without committing

    access_token, refresh_token = token_service.issue_token_pair(db, user)

    # OTP is persisted before its email is queued, so the code is valid by
    # the time it can possibly arrive.
    raw_otp = otp_service.generate_and_save_otp(db, user.id, OTPPurpose.EMAIL_VERIFICATION.value)
    message = email_service.queue_email(
        db, user.email, raw_otp, email_service.TEMPLATE_VERIFICATION, user_id=user.id
    )

    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} signed up as {user.username}")

    data = {
        "user": _user_summary(user),
        "access_token": access_token,
        "refresh_token": refresh_token,
    }
    return data, message.id


# ── Login ─────────────────────────────────────────────────────────────────────

def login(db: Session, email: str, password: str) -> dict:
    user = db.query(User).filter(User.email == email).first()
    # Hash something either way so an unknown email costs as much as a bad password.
    password_ok = verify_password(password, user.password if user else _DUMMY_HASH)

    if user is None:
        logger.info("Login attempt for unknown email")
        raise CredentialsException("Invalid credentials")
    if not password_ok:
        logger.info(f"Login attempt with wrong password for user {user.id}")
        raise CredentialsException("Invalid Password")

    access_token, refresh_token = token_service.issue_token_pair(db, user)
    db.commit()

    return {
        "user": _user_summary(user),
        "access_token": access_token,
        "refresh_token": refresh_token,
    }


# ── OTP verification ──────────────────────────────────────────────────────────

def _issue_reset_token(user: User) -> str:
    return create_password_reset_token(PasswordResetClaims(id=user.id, email=user.email))


def verify_otp(db: Session, user_id: str, otp: str, purpose: str) -> dict:
    """
    Verification for an authenticated user.
    email_verification marks the email verified; password_reset mints a reset token.
    """
    user = find_user_by_id(db, user_id)
    otp_service.consume_otp(db, user.id, otp)

    if purpose == OTPPurpose.EMAIL_VERIFICATION.value:
        user.is_email_verified = True
        db.commit()
        logger.info(f"Email verified for user {user.id}")
        return {"verified": True, "message": "Email verification successful"}

    if purpose == OTPPurpose.PASSWORD_RESET.value:
        db.commit()
        return {"verified": True, "reset_token": _issue_reset_token(user)}

    raise BadRequestException("Invalid OTP purpose")


def verify_otp_for_password_reset(db: Session, email: str, otp: str) -> dict:
    """Verification by email + code, for users who cannot log in."""
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise NotFoundException("User")

    otp_service.consume_otp(db, user.id, otp)
    db.commit()
    logger.info(f"Password reset OTP verified for user {user.id}")

    return {
        "verified": True,
        "user_id": user.id,
        "reset_token": _issue_reset_token(user),
        "message": "OTP verified successfully. You can now reset your password.",
    }


# ── OTP (re)issuance ──────────────────────────────────────────────────────────

def resend_otp(db: Session, user_id: str) -> str:
    """Issues a fresh verification OTP. Returns the outbox message id."""
    user = find_user_by_id(db, user_id)
    if user.is_email_verified:
        raise BadRequestException("User is already verified")

    raw_otp = otp_service.generate_and_save_otp(db, user.id, OTPPurpose.EMAIL_VERIFICATION.value)
    message = email_service.queue_email(
        db, user.email, raw_otp, email_service.TEMPLATE_VERIFICATION, user_id=user.id
    )
    db.commit()
    return message.id


def request_password_reset_otp(db: Session, email: str) -> str:
    """Issues a password reset OTP. Returns the outbox message id."""
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise NotFoundException("User")

    raw_otp = otp_service.generate_and_save_otp(db, user.id, OTPPurpose.PASSWORD_RESET.value)
    message = email_service.queue_email(
        db, user.email, raw_otp, email_service.TEMPLATE_PASSWORD_RESET, user_id=user.id
    )
    db.commit()
    logger.info(f"Password reset requested for user {user.id}")
    return message.id


# ── Password reset ────────────────────────────────────────────────────────────

def reset_password(db: Session, token: Optional[str], new_password: str) -> None:
    """
    Sets a new password for the holder of a valid reset token and revokes
    every refresh token of that user, forcing a fresh login everywhere.
    """
    if not token:
        raise CredentialsException("Authentication token is required")

    try:
        claims = decode_token(token)
    except InvalidTokenError:
        raise CredentialsException("Invalid or expired token")

    if not isinstance(claims, PasswordResetClaims) or not claims.id:
        raise CredentialsException("Please provide a valid password reset token")

    user = db.query(User).filter(User.id == claims.id).first()
    if user is None:
        raise NotFoundException("User")

    user.password = hash_password(new_password)
    revoked = token_service.revoke_all_refresh_tokens(db, user.id)
    db.commit()
    logger.info(f"Password reset for user {user.id}; {revoked} refresh token(s) revoked")
