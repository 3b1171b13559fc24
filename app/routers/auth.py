"""
Auth router: signup, login, OTP, token refresh, password reset.

Email verification:
  1. POST /api/auth/signup     → create user (unverified) + tokens + OTP email
  2. POST /api/auth/verify-otp → (bearer) verify OTP → mark email verified
     GET  /api/auth/resend-otp → (bearer) issue a new OTP, once per minute

Password reset:
  1. POST /api/auth/reset-password/request-otp → OTP email
  2. POST /api/auth/reset-password/verify-otp  → email + code → reset token
  3. POST /api/auth/reset-password/reset       → (reset token) set new password

Emails are written to the outbox inside the request and delivered by a
background task after the response is sent.
"""
from typing import Optional

from fastapi import APIRouter, Depends, BackgroundTasks, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from app.database import get_db, get_session_factory
from app.core.dependencies import get_bearer_token, get_current_user
from app.core.rate_limiter import limiter
from app.models.user import User
from app.schemas.auth import (
    SignupRequest, LoginRequest, VerifyOTPRequest, PasswordResetOTPRequest,
    PasswordResetVerifyRequest, ResetPasswordRequest, RefreshTokenRequest,
    AuthResponse, TokenResponse, OTPVerificationResponse, MessageResponse,
)
from app.schemas.user import CurrentUserResponse, UserOut
from app.services import auth_service, token_service
from app.services.email_service import deliver_email
from app.services.otp_service import OTPPurpose

router = APIRouter()


# ── Signup ────────────────────────────────────────────────────────────────────

@router.post("/signup", response_model=AuthResponse, status_code=201)
@limiter.limit("5/minute")
def signup(
    request: Request,
    body: SignupRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Creates an unverified account and returns tokens immediately.
    The verification OTP email is delivered after the response.
    """
    data, message_id = auth_service.sign_up(
        db,
        first_name=body.first_name,
        last_name=body.last_name,
        username=body.username,
        email=body.email,
        password=body.password,
        roles=body.roles,
    )
    background_tasks.add_task(deliver_email, message_id, session_factory)

    return {
        "success": True,
        "message": "User registered successfully. Check your email for verification code.",
        "data": data,
    }


# ── Login ─────────────────────────────────────────────────────────────────────

@router.post("/login", response_model=AuthResponse)
@limiter.limit("10/minute")
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
):
    data = auth_service.login(db, email=body.email, password=body.password)
    return {"success": True, "message": "Login successful", "data": data}


# ── Email verification ────────────────────────────────────────────────────────

@router.post(
    "/verify-otp",
    response_model=OTPVerificationResponse,
    response_model_exclude_none=True,
)
@limiter.limit("10/minute")
def verify_otp(
    request: Request,
    body: VerifyOTPRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = auth_service.verify_otp(
        db, current_user.id, body.code, OTPPurpose.EMAIL_VERIFICATION.value
    )
    return {"success": True, "message": "OTP verified successfully", "is_verified": result}


@router.get("/resend-otp", response_model=MessageResponse)
@limiter.limit("3/minute")
def resend_otp(
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    message_id = auth_service.resend_otp(db, current_user.id)
    background_tasks.add_task(deliver_email, message_id, session_factory)
    return {"success": True, "message": "A new verification code has been sent to your email"}


# ── Token Refresh ─────────────────────────────────────────────────────────────

@router.post("/refresh-token", response_model=TokenResponse)
@limiter.limit("20/minute")
def refresh_token(
    request: Request,
    body: Optional[RefreshTokenRequest] = None,
    db: Session = Depends(get_db),
):
    """
    Exchange a refresh token for a new access token + refresh token.
    The presented refresh token is revoked: each one can be redeemed once.
    """
    if body is None or not body.refresh_token:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Refresh token is required"},
        )

    access_token, new_refresh_token = token_service.rotate_refresh_token(db, body.refresh_token)
    return {
        "success": True,
        "message": "Tokens refreshed successfully",
        "data": {"access_token": access_token, "refresh_token": new_refresh_token},
    }


# ── Password reset ────────────────────────────────────────────────────────────

@router.post("/reset-password/request-otp", response_model=MessageResponse)
@limiter.limit("3/minute")
def request_password_reset(
    request: Request,
    body: PasswordResetOTPRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    message_id = auth_service.request_password_reset_otp(db, body.email)
    background_tasks.add_task(deliver_email, message_id, session_factory)
    return {"success": True, "message": "Password reset verification code sent to your email"}


@router.post(
    "/reset-password/verify-otp",
    response_model=OTPVerificationResponse,
    response_model_exclude_none=True,
)
@limiter.limit("10/minute")
def verify_password_reset_otp(
    request: Request,
    body: PasswordResetVerifyRequest,
    db: Session = Depends(get_db),
):
    result = auth_service.verify_otp_for_password_reset(db, body.email, body.code)
    return {"success": True, "message": "OTP verified successfully", "is_verified": result}


@router.post("/reset-password/reset", response_model=MessageResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
):
    """Set a new password. Authorization header must carry the reset token."""
    auth_service.reset_password(db, token, body.new_password)
    return {"success": True, "message": "Password reset successfully"}


# ── Current user ──────────────────────────────────────────────────────────────

@router.get("/me", response_model=CurrentUserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """
    Return the authenticated user's stored profile, minus the password hash.
    No DB call needed — get_current_user already fetched the user.
    """
    return {"success": True, "data": UserOut.model_validate(current_user)}
