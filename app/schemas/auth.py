"""
Auth schemas: request bodies and responses for signup, login, OTP, token and
password reset operations. JSON field names are camelCase on the wire.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Optional
import re


def check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", v):
        raise ValueError("Password must contain at least one number")
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(CamelModel):
    first_name: str
    last_name: str
    username: str
    email: EmailStr
    password: str
    roles: list[str]

    @field_validator("first_name")
    @classmethod
    def first_name_valid(cls, v: str) -> str:
        if len(v) < 2:
            raise ValueError("First name must be at least 2 characters")
        return v

    @field_validator("last_name")
    @classmethod
    def last_name_valid(cls, v: str) -> str:
        if len(v) < 2:
            raise ValueError("Last name must be at least 2 characters")
        return v

    @field_validator("username")
    @classmethod
    def username_valid(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        return v

    @field_validator("password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return check_password_strength(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_present(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class VerifyOTPRequest(CamelModel):
    code: str
    email: Optional[EmailStr] = None

    @field_validator("code")
    @classmethod
    def code_length(cls, v: str) -> str:
        if len(v) != 4:
            raise ValueError("Verification code must be 4 digits")
        return v


class PasswordResetVerifyRequest(VerifyOTPRequest):
    email: EmailStr


class PasswordResetOTPRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


# ── Responses ─────────────────────────────────────────────────────────────────

class UserSummary(CamelModel):
    """User fields returned alongside tokens after signup/login."""
    id: str
    email: str
    username: str
    roles: list[str]
    # serialized as the lowercase `isverified` key signup has always returned
    isverified: bool


class AuthData(CamelModel):
    user: UserSummary
    access_token: str
    refresh_token: str


class AuthResponse(CamelModel):
    success: bool = True
    message: str
    data: AuthData


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class TokenResponse(CamelModel):
    success: bool = True
    message: str
    data: TokenPair


class OTPVerificationResult(CamelModel):
    verified: bool
    message: Optional[str] = None
    user_id: Optional[str] = None
    reset_token: Optional[str] = None


class OTPVerificationResponse(CamelModel):
    success: bool = True
    message: str
    is_verified: OTPVerificationResult


class MessageResponse(CamelModel):
    success: bool = True
    message: str
