"""
Ariya Backend — User Directory
================================

Read-side lookup of accounts by id or email. The Auth Resolver only ever
reads through this interface; mutations belong to the Auth Service.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


def parse_user_id(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class UserDirectory(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        ...


class SqlUserDirectory(UserDirectory):
    """UserDirectory backed by the request's AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> Optional[User]:
        uid = parse_user_id(user_id)
        if uid is None:
            return None
        return await self.db.get(User, uid)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()
