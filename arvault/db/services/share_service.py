"""Share records: create, resolve, list and delete."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arvault.db.models.share import Share
from arvault.db.models.user import User


async def create_share(
    db_session: AsyncSession,
    owner: User,
    title: str | None = None,
    description: str | None = None,
    expires_in_days: int | None = None,
) -> Share:
    """Snapshot the owner's dashboard content into a new share."""
    expires_at = None
    if expires_in_days is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(days=expires_in_days)

    share = Share(
        owner_id=owner.id,
        title=title,
        description=description,
        content_snapshot=owner.dashboard_content or "",
        expires_at=expires_at,
    )
    db_session.add(share)
    await db_session.commit()
    await db_session.refresh(share)
    return share


async def get_share(db_session: AsyncSession, share_id: UUID) -> Share | None:
    result = await db_session.execute(select(Share).where(Share.id == share_id))
    return result.scalar_one_or_none()


async def get_active_share(
    db_session: AsyncSession, share_id: UUID, now: datetime | None = None
) -> Share | None:
    """Return the share only if it exists and has not expired."""
    share = await get_share(db_session, share_id)
    if share is None or share.is_expired(now):
        return None
    return share


async def list_shares(db_session: AsyncSession, owner_id: UUID) -> list[Share]:
    result = await db_session.execute(
        select(Share).where(Share.owner_id == owner_id).order_by(Share.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_share(db_session: AsyncSession, share: Share) -> None:
    await db_session.delete(share)
    await db_session.commit()
