"""User directory endpoints"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.api.deps import get_current_identity, require
from etuition.db.database import get_db
from etuition.schemas.users import (
    RoleResponse,
    UserCreate,
    UserListResponse,
    UserProfileUpdate,
    UserResponse,
    UserRoleUpdate,
)
from etuition.services.authorization import Operation
from etuition.services.identity import IdentityResolver, VerifiedIdentity
from etuition.services.users import UserService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: UserCreate,
    identity: VerifiedIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Create the caller's user record after their first login"""
    user = await UserService(db).register(identity, user_data)
    await db.commit()
    return UserResponse.model_validate(user)


@router.get("/", response_model=UserListResponse)
async def list_users(
    search: str | None = Query(None),
    _admin=Depends(require(Operation.LIST_USERS)),
    db: AsyncSession = Depends(get_db),
) -> UserListResponse:
    """List and search users (admin)"""
    users, total = await UserService(db).list_users(search)
    return UserListResponse(
        users=[UserResponse.model_validate(user) for user in users],
        total=total,
    )


@router.get("/{email}/role", response_model=RoleResponse)
async def get_user_role(
    email: str,
    db: AsyncSession = Depends(get_db),
) -> RoleResponse:
    """Public role lookup by email"""
    role = await IdentityResolver(db).resolve_role(email)
    return RoleResponse(email=email.lower(), role=role)


@router.patch("/role/{user_id}", response_model=UserResponse)
async def change_user_role(
    user_id: UUID,
    role_update: UserRoleUpdate,
    _admin=Depends(require(Operation.CHANGE_ROLE)),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await UserService(db).change_role(user_id, role_update.role)
    await db.commit()
    return UserResponse.model_validate(user)


@router.patch("/update/{user_id}", response_model=UserResponse)
async def update_user_profile(
    user_id: UUID,
    update_data: UserProfileUpdate,
    _admin=Depends(require(Operation.EDIT_USER_PROFILE)),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await UserService(db).update_profile(user_id, update_data)
    await db.commit()
    return UserResponse.model_validate(user)
