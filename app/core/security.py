"""
Security utilities: password/OTP hashing and signed token management.
Uses PyJWT (not python-jose) — actively maintained.

Signed tokens carry one of two explicit claim sets, discriminated by `purpose`:
  - AccessClaims         purpose="access"          identity + role claims
  - PasswordResetClaims  purpose="password_reset"  id + email only
decode_token() validates the claim shape, so a reset token can never pass as
an access token (and the reverse).
"""
from datetime import datetime, timedelta, timezone
from typing import Annotated, Literal, Optional, Union

import jwt
from jwt.exceptions import InvalidTokenError
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from app.config import settings

# ── Hashing ───────────────────────────────────────────────────────────────────
# One salted bcrypt context for both passwords and OTP codes.
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ── Claims ────────────────────────────────────────────────────────────────────

class _Claims(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccessClaims(_Claims):
    purpose: Literal["access"] = "access"
    id: str
    email: str
    username: str
    roles: list[str] = []
    is_verified: bool = False


class PasswordResetClaims(_Claims):
    purpose: Literal["password_reset"] = "password_reset"
    id: str
    email: str


TokenClaims = Annotated[
    Union[AccessClaims, PasswordResetClaims],
    Field(discriminator="purpose"),
]
_claims_adapter = TypeAdapter(TokenClaims)


def build_access_claims(user) -> AccessClaims:
    return AccessClaims(
        id=str(user.id),
        email=user.email,
        username=user.username,
        roles=list(user.roles or []),
        is_verified=bool(user.is_email_verified),
    )


# ── Token creation ────────────────────────────────────────────────────────────

def _sign(claims: _Claims, expires_in: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = claims.model_dump(by_alias=True)
    payload["iat"] = now
    payload["exp"] = now + expires_in
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(claims: AccessClaims, expires_in: Optional[timedelta] = None) -> str:
    """
    Access token lifetime depends on verification status:
    24 hours once the email is verified, 5 minutes before that.
    """
    if expires_in is None:
        seconds = (
            settings.access_token_expire_verified_seconds
            if claims.is_verified
            else settings.access_token_expire_unverified_seconds
        )
        expires_in = timedelta(seconds=seconds)
    return _sign(claims, expires_in)


def create_password_reset_token(claims: PasswordResetClaims) -> str:
    return _sign(
        claims,
        timedelta(seconds=settings.password_reset_token_expire_seconds),
    )


# ── Token decoding ────────────────────────────────────────────────────────────

def decode_token(token: str) -> Union[AccessClaims, PasswordResetClaims]:
    """
    Verifies signature and expiry, then parses the claim set.
    Raises jwt.exceptions.InvalidTokenError (or subclass) on any failure.
    The caller is responsible for converting this into an HTTP error.
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    try:
        return _claims_adapter.validate_python(payload)
    except ValidationError as exc:
        raise InvalidTokenError("Malformed token claims") from exc


def decode_access_token(token: str) -> AccessClaims:
    claims = decode_token(token)
    if not isinstance(claims, AccessClaims):
        raise InvalidTokenError("Not an access token")
    return claims


def decode_password_reset_token(token: str) -> PasswordResetClaims:
    claims = decode_token(token)
    if not isinstance(claims, PasswordResetClaims):
        raise InvalidTokenError("Not a password reset token")
    return claims
