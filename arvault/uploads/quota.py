"""Per-user model upload ceiling."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from arvault.db.models.user import User
from arvault.db.services.asset_service import count_quota_models
from arvault.lib.exceptions import QuotaExceededError


async def check_model_quota(db_session: AsyncSession, owner: User) -> int:
    """Raise QuotaExceededError if *owner* cannot add another model.

    Returns the owner's current count otherwise. Only the owner's own
    non-admin models count; admin uploads skip this check entirely.
    """
    current = await count_quota_models(db_session, owner.id)
    if current >= owner.max_models:
        raise QuotaExceededError(current, owner.max_models)
    return current
