"""Lookups against the user store (suspension flags and roles)"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models import UserFlag, UserRole

ADMIN_ROLE = "admin"


class UserDirectory:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_suspended(self, user_id: str) -> bool:
        result = await self.db.execute(
            select(UserFlag.is_suspended).where(UserFlag.user_id == user_id)
        )
        return bool(result.scalar_one_or_none())

    async def get_role(self, user_id: str) -> str:
        result = await self.db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
        return result.scalar_one_or_none() or "user"

    async def is_admin(self, user_id: str) -> bool:
        return await self.get_role(user_id) == ADMIN_ROLE
