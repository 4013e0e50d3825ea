"""User lookups needed by the asset core."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arvault.db.models.user import User


async def get_user_by_id(db_session: AsyncSession, user_id: UUID) -> User | None:
    result = await db_session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def increase_max_models(db_session: AsyncSession, user: User, by: int = 1) -> User:
    user.max_models = user.max_models + by
    await db_session.commit()
    await db_session.refresh(user)
    return user
