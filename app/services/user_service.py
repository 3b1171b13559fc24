"""
User service: profile updates.

Role names are embedded in access tokens, so a role change re-issues the
caller's tokens in the same commit as the update.
"""
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import ConflictException
from app.core.security import hash_password
from app.models.user import User
from app.schemas.user import UserOut
from app.services import token_service
from app.services.auth_service import find_user_by_id

logger = logging.getLogger(__name__)


def check_duplicate_field(db: Session, field: str, value: str, user_id: str) -> bool:
    """True if another user already holds `value` in the unique column `field`."""
    column = getattr(User, field)
    count = db.query(User).filter(column == value, User.id != user_id).count()
    return count > 0


def update_user(db: Session, user_id: str, changes: dict) -> dict:
    """
    Applies a partial update. `changes` holds only the fields the client sent.
    Nothing is written if a new username or email is already taken.
    """
    user = find_user_by_id(db, user_id)

    username_taken = (
        "username" in changes
        and changes["username"] != user.username
        and check_duplicate_field(db, "username", changes["username"], user.id)
    )
    email_taken = (
        "email" in changes
        and changes["email"] != user.email
        and check_duplicate_field(db, "email", changes["email"], user.id)
    )
    if username_taken and email_taken:
        raise ConflictException("Both email and username already exist")
    if username_taken:
        raise ConflictException("Username already exists")
    if email_taken:
        raise ConflictException("Email already exists")

    roles_changed = "roles" in changes and sorted(changes["roles"]) != sorted(user.roles or [])

    for field, value in changes.items():
        if field == "password":
            value = hash_password(value)
        elif field == "roles":
            value = list(value)
        setattr(user, field, value)

    response: dict = {}
    if roles_changed:
        db.flush()
        response["access_token"], response["refresh_token"] = token_service.issue_token_pair(db, user)
        response["message"] = "User updated successfully. New token generated due to role change."

    db.commit()
    db.refresh(user)

    if roles_changed:
        logger.info(f"New token generated for user {user.id} due to role change")
    response["user"] = UserOut.model_validate(user)
    return response
