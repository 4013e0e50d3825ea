"""Asset metadata gateway: typed reads and writes of asset rows."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from arvault.db.models.asset import Asset

MODEL_CATEGORY = "model"


async def get_asset_by_key(db_session: AsyncSession, key: str) -> Asset | None:
    result = await db_session.execute(select(Asset).where(Asset.key == key))
    return result.scalar_one_or_none()


async def insert_asset(
    db_session: AsyncSession,
    *,
    key: str,
    owner_id: UUID,
    display_name: str,
    category: str,
    content_type: str,
    size_bytes: int,
    is_public: bool = False,
    is_admin_upload: bool = False,
    uploaded_by_admin: UUID | None = None,
) -> Asset:
    """Insert an asset row and commit.

    Database errors propagate so the caller can roll back the object write.
    """
    asset = Asset(
        key=key,
        owner_id=owner_id,
        display_name=display_name,
        category=category,
        content_type=content_type,
        size_bytes=size_bytes,
        is_public=is_public,
        is_admin_upload=is_admin_upload,
        uploaded_by_admin=uploaded_by_admin,
    )
    db_session.add(asset)
    await db_session.commit()
    await db_session.refresh(asset)
    return asset


async def list_visible_assets(
    db_session: AsyncSession, owner_id: UUID, include_all: bool = False
) -> list[Asset]:
    """Assets a user can see in their library.

    Regular users see their own uploads plus admin content shared with
    everyone; ``include_all`` (admins) returns every asset.
    """
    query = select(Asset).order_by(Asset.created_at.desc())
    if not include_all:
        query = query.where(
            or_(
                Asset.owner_id == owner_id,
                Asset.is_public.is_(True) & Asset.is_admin_upload.is_(True),
            )
        )
    result = await db_session.execute(query)
    return list(result.scalars().all())


async def list_owner_models(db_session: AsyncSession, owner_id: UUID) -> list[Asset]:
    result = await db_session.execute(
        select(Asset)
        .where(Asset.owner_id == owner_id, Asset.category == MODEL_CATEGORY)
        .order_by(Asset.created_at.desc())
    )
    return list(result.scalars().all())


async def count_quota_models(db_session: AsyncSession, owner_id: UUID) -> int:
    """Count the owner's models that count toward their ceiling.

    Admin uploads, including admin content shared publicly, are excluded.
    """
    result = await db_session.execute(
        select(func.count())
        .select_from(Asset)
        .where(
            Asset.owner_id == owner_id,
            Asset.category == MODEL_CATEGORY,
            Asset.is_admin_upload.is_(False),
        )
    )
    return result.scalar() or 0


async def link_companions(db_session: AsyncSession, first: Asset, second: Asset) -> None:
    """Point two same-owner assets at each other."""
    if first.owner_id != second.owner_id:
        raise ValueError("Companion assets must share an owner")
    first.companion_key = second.key
    second.companion_key = first.key
    await db_session.commit()


async def set_public(db_session: AsyncSession, asset: Asset, is_public: bool) -> Asset:
    asset.is_public = is_public
    await db_session.commit()
    await db_session.refresh(asset)
    return asset


async def delete_asset_row(db_session: AsyncSession, asset: Asset) -> None:
    """Delete the row and clear companion references to it."""
    await db_session.execute(
        update(Asset)
        .where(Asset.companion_key == asset.key, Asset.owner_id == asset.owner_id)
        .values(companion_key=None)
    )
    await db_session.delete(asset)
    await db_session.commit()


async def list_all_keys(db_session: AsyncSession) -> set[str]:
    result = await db_session.execute(select(Asset.key))
    return set(result.scalars().all())


async def list_assets_by_keys(db_session: AsyncSession, keys: list[str]) -> list[Asset]:
    if not keys:
        return []
    result = await db_session.execute(select(Asset).where(Asset.key.in_(keys)))
    return list(result.scalars().all())
