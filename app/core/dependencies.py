"""
FastAPI dependencies used across routers.
Keep this file lean — only auth/DB dependencies go here.
Business logic belongs in services/.
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from jwt.exceptions import InvalidTokenError

from app.database import get_db
from app.core.security import AccessClaims, decode_access_token
from app.core.exceptions import CredentialsException
from app.models.user import User

# auto_error=False so a missing header produces our own 401 message
bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Raw token from `Authorization: Bearer <token>`, or None."""
    if credentials is None:
        return None
    return credentials.credentials


def get_token_claims(token: Optional[str] = Depends(get_bearer_token)) -> AccessClaims:
    """
    Validates the access token and returns its claims.

    Checks performed (in order):
    1. A bearer token is present
    2. It is a valid JWT signed with our secret and not expired
    3. Its claims are access claims (a password reset token is rejected)
    """
    if not token:
        raise CredentialsException("Authentication token is required")
    try:
        return decode_access_token(token)
    except InvalidTokenError:
        raise CredentialsException("Invalid or expired token")


def get_current_user(
    claims: AccessClaims = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> User:
    """
    Returns the authenticated User.
    The user is re-read on every request, so a deleted account's still-valid
    token is rejected immediately.
    """
    user = db.query(User).filter(User.id == claims.id).first()
    if user is None:
        raise CredentialsException("User not found")
    return user
