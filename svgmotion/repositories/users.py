"""
用户仓储 - 凭据存储的唯一访问入口
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from svgmotion.models.user import User


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: str) -> Optional[int]:
        result = await self.db.execute(
            select(User.credit_balance).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        """写入新用户并 flush，唯一约束冲突会在这里抛出 IntegrityError"""
        self.db.add(user)
        await self.db.flush()
        return user
