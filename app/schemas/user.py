"""
User schemas: profile views and update requests.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime

from app.schemas.auth import CamelModel, check_password_strength


class UserOut(BaseModel):
    """
    Stored user minus the password hash.
    Pydantic only exposes fields declared here.
    """
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    first_name: str
    last_name: str
    username: str
    email: str
    is_email_verified: bool
    roles: list[str]
    created_at: datetime
    updated_at: datetime


class CurrentUserResponse(CamelModel):
    success: bool = True
    data: UserOut


class UserUpdateRequest(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    roles: Optional[list[str]] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def name_valid(cls, v: Optional[str], info) -> Optional[str]:
        if v is not None and len(v) < 2:
            label = "First name" if info.field_name == "first_name" else "Last name"
            raise ValueError(f"{label} must be at least 2 characters")
        return v

    @field_validator("username")
    @classmethod
    def username_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        return v

    @field_validator("password")
    @classmethod
    def password_strong(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return check_password_strength(v)

    @model_validator(mode="after")
    def not_empty(self) -> "UserUpdateRequest":
        if not self.changes():
            raise ValueError("At least one field must be provided for update")
        return self

    def changes(self) -> dict:
        """Only the fields the client actually sent with a non-null value."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


class UserUpdateData(CamelModel):
    user: UserOut
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    message: Optional[str] = None


class UserUpdateResponse(CamelModel):
    success: bool = True
    message: str
    data: UserUpdateData
