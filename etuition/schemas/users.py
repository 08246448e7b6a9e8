"""Pydantic schemas for the user directory"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from etuition.db.models import UserRole


class UserCreate(BaseModel):
    display_name: str | None = Field(None, max_length=255)
    photo_url: str | None = None
    phone: str | None = Field(None, max_length=32)
    role: UserRole = UserRole.STUDENT


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserProfileUpdate(BaseModel):
    display_name: str | None = Field(None, min_length=1, max_length=255)
    photo_url: str | None = None


class UserResponse(BaseModel):
    id: UUID
    email: str
    display_name: str | None
    photo_url: str | None
    phone: str | None
    role: UserRole
    created_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int


class RoleResponse(BaseModel):
    email: str
    role: UserRole
