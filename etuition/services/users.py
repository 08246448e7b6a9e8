"""User directory: first-login registration and admin account management"""

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.db.models import User, UserRole
from etuition.schemas.users import UserCreate, UserProfileUpdate
from etuition.services.exceptions import NotFound, ValidationError
from etuition.services.identity import VerifiedIdentity

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, identity: VerifiedIdentity, user_data: UserCreate) -> User:
        """Create the user record on first login"""
        existing = await self._get_user_by_email(identity.email)
        if existing:
            raise ValidationError("Email already registered")

        if user_data.role == UserRole.ADMIN:
            raise ValidationError("Admin role cannot be self-assigned")

        user = User(
            email=identity.email.lower(),
            firebase_uid=identity.subject_id,
            display_name=user_data.display_name,
            photo_url=user_data.photo_url,
            phone=user_data.phone,
            role=user_data.role,
        )
        self.db.add(user)
        await self.db.flush()

        logger.info(f"Registered user {user.email} as {user.role.value}")
        return user

    async def get_user(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def list_users(self, search: str | None = None) -> tuple[list[User], int]:
        stmt = select(User)
        count_stmt = select(func.count(User.id))
        if search:
            pattern = f"%{search}%"
            condition = or_(
                User.email.ilike(pattern),
                User.display_name.ilike(pattern),
            )
            stmt = stmt.where(condition)
            count_stmt = count_stmt.where(condition)

        stmt = stmt.order_by(User.created_at.desc())
        users = (await self.db.execute(stmt)).scalars().all()
        total = (await self.db.execute(count_stmt)).scalar() or 0
        return list(users), total

    async def change_role(self, user_id: UUID, role: UserRole) -> User:
        user = await self.get_user(user_id)
        if user.role != role:
            logger.info(f"Changing role of {user.email}: {user.role.value} -> {role.value}")
            user.role = role
            await self.db.flush()
        return user

    async def update_profile(self, user_id: UUID, update_data: UserProfileUpdate) -> User:
        user = await self.get_user(user_id)
        for field, value in update_data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)
        await self.db.flush()
        return user

    async def _get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
