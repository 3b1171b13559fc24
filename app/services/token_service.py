"""
Refresh-token storage and single-use rotation.

Refresh tokens are opaque random strings persisted in `refresh_tokens`.
A token is valid iff its row exists and has not expired; redeeming it deletes
the row, so each token can be exchanged exactly once.
"""
import logging
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import CredentialsException
from app.core.security import build_access_claims, create_access_token
from app.database import utcnow
from app.models.refresh_token import RefreshToken
from app.models.user import User

logger = logging.getLogger(__name__)


def issue_refresh_token(db: Session, user_id: str) -> str:
    """Adds a new refresh token row to the session and returns the token. Does NOT commit."""
    token = secrets.token_urlsafe(48)
    db.add(
        RefreshToken(
            token=token,
            user_id=user_id,
            expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
        )
    )
    db.flush()
    return token


def issue_token_pair(db: Session, user: User) -> tuple[str, str]:
    """Access token from the user's current claims plus a fresh refresh token."""
    access_token = create_access_token(build_access_claims(user))
    refresh_token = issue_refresh_token(db, user.id)
    return access_token, refresh_token


def verify_refresh_token(db: Session, token: str) -> RefreshToken:
    """
    Returns the stored token row if it exists and has not expired.
    An expired row is deleted (and committed) before the 401 is raised.
    """
    record = db.query(RefreshToken).filter(RefreshToken.token == token).first()
    if record is None:
        raise CredentialsException("Invalid refresh token")

    if record.expires_at < utcnow():
        db.delete(record)
        db.commit()
        logger.info(f"Expired refresh token {record.id} removed for user {record.user_id}")
        raise CredentialsException("Refresh token expired")

    return record


def revoke_all_refresh_tokens(db: Session, user_id: str) -> int:
    """Deletes every refresh token of the user. Does NOT commit."""
    return (
        db.query(RefreshToken)
        .filter(RefreshToken.user_id == user_id)
        .delete(synchronize_session=False)
    )


def rotate_refresh_token(db: Session, token: str) -> tuple[str, str]:
    """
    Exchanges a refresh token for a new access/refresh pair.
    Revoking the old token and storing the new one commit together.
    """
    record = verify_refresh_token(db, token)

    user = db.query(User).filter(User.id == record.user_id).first()
    if user is None:
        raise CredentialsException("User not found")

    db.delete(record)
    access_token, refresh_token = issue_token_pair(db, user)
    db.commit()

    logger.info(f"Refresh token rotated for user {user.id}")
    return access_token, refresh_token
