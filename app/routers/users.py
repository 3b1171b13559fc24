"""
Users router: profile management.

Endpoints:
  PATCH /api/user/update → update any of firstName, lastName, username,
                           email, password, roles
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.user import UserUpdateRequest, UserUpdateResponse
from app.services import user_service

router = APIRouter()


@router.patch("/update", response_model=UserUpdateResponse, response_model_exclude_none=True)
def update_me(
    body: UserUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Only provided fields are changed. Username/email uniqueness is checked
    before anything is written. A roles change returns a fresh token pair.
    """
    data = user_service.update_user(db, current_user.id, body.changes())
    return {
        "success": True,
        "message": "User information updated successfully",
        "data": data,
    }
