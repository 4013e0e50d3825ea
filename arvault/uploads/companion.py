"""Companion linking between alternate encodings of one 3D scene.

A ``chair.glb`` and a ``chair.usdz`` uploaded by the same owner are two
formats of the same asset; viewers pick whichever the device supports.
Linking is advisory: callers run it after the upload response and any
failure is logged, not surfaced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from arvault.db.models.asset import Asset
from arvault.db.services import asset_service
from arvault.lib import observability
from arvault.lib.exceptions import ValidationError
from arvault.lib.hooks import COMPANION_LINKED, COMPANION_SUGGESTED, hooks
from arvault.uploads.keys import base_name, file_extension

logger = logging.getLogger(__name__)

COMPANION_EXTENSIONS = ("glb", "gltf", "usdz")

# Which format to suggest when only one half of a pair exists
_SUGGESTED_FORMAT = {"glb": "usdz", "gltf": "usdz", "usdz": "glb"}


@dataclass
class CompanionSuggestion:
    key: str
    display_name: str
    current_format: str
    suggested_format: str
    message: str


@dataclass
class CompanionLookup:
    """Where an asset's companion lives, or what to upload to create one."""

    companion_key: str | None = None
    linked: bool = False
    suggested_name: str | None = None
    large_file: bool = False
    message: str | None = None


def _is_companion_candidate(asset: Asset) -> bool:
    return file_extension(asset.display_name) in COMPANION_EXTENSIONS


def suggested_name(display_name: str) -> str:
    suggested = _SUGGESTED_FORMAT.get(file_extension(display_name), "usdz")
    return f"{display_name.rsplit('.', 1)[0]}.{suggested}"


def suggestion_message(display_name: str, size_bytes: int, large_file_threshold: int) -> str:
    name = suggested_name(display_name)
    suggested = file_extension(name)
    if size_bytes > large_file_threshold:
        return (
            f"{display_name} is large; upload a lighter {name} "
            f"so devices that need {suggested.upper()} can load it quickly"
        )
    return f"Upload {name} to support devices that need {suggested.upper()}"


async def find_sibling(db_session: AsyncSession, asset: Asset) -> Asset | None:
    """Most recent unlinked same-owner model with the same base name and another format."""
    ext = file_extension(asset.display_name)
    name = base_name(asset.display_name)
    for candidate in await asset_service.list_owner_models(db_session, asset.owner_id):
        if candidate.key == asset.key or candidate.companion_key:
            continue
        if not _is_companion_candidate(candidate):
            continue
        if base_name(candidate.display_name) != name:
            continue
        if file_extension(candidate.display_name) == ext:
            continue
        return candidate
    return None


async def link_companion(
    db_session: AsyncSession, asset: Asset, large_file_threshold: int
) -> Asset | None:
    """Link *asset* to its sibling if one exists, otherwise suggest one.

    Returns the sibling that was linked, or None.
    """
    if not _is_companion_candidate(asset):
        return None

    sibling = await find_sibling(db_session, asset)
    if sibling is None:
        message = suggestion_message(asset.display_name, asset.size_bytes, large_file_threshold)
        observability.event(
            "companion.suggestion",
            asset_key=asset.key,
            owner_id=str(asset.owner_id),
            detail=message,
        )
        await hooks.do_action(COMPANION_SUGGESTED, asset, message)
        return None

    await _link(db_session, asset, sibling)
    return sibling


async def _link(db_session: AsyncSession, asset: Asset, sibling: Asset) -> None:
    await asset_service.link_companions(db_session, asset, sibling)
    observability.event(
        "companion.linked", asset_key=asset.key, companion_key=sibling.key
    )
    await hooks.do_action(COMPANION_LINKED, asset, sibling)


async def lookup_companion(
    db_session: AsyncSession, asset: Asset, large_file_threshold: int
) -> CompanionLookup:
    """Resolve the companion of *asset* on demand.

    An existing link wins. Otherwise a waiting sibling is linked now, and
    when there is none the result carries upload instructions instead.
    Unlike :func:`link_companion` this never fires the suggestion hook;
    the caller is already looking at the answer.
    """
    if not _is_companion_candidate(asset):
        raise ValidationError(
            "Companion lookup only applies to glb, gltf and usdz models",
            details={"extension": file_extension(asset.display_name)},
        )
    if asset.companion_key:
        return CompanionLookup(companion_key=asset.companion_key)

    sibling = await find_sibling(db_session, asset)
    if sibling is not None:
        await _link(db_session, asset, sibling)
        return CompanionLookup(companion_key=sibling.key, linked=True)

    return CompanionLookup(
        suggested_name=suggested_name(asset.display_name),
        large_file=asset.size_bytes > large_file_threshold,
        message=suggestion_message(asset.display_name, asset.size_bytes, large_file_threshold),
    )


async def companion_suggestions(
    db_session: AsyncSession, owner_id, large_file_threshold: int
) -> list[CompanionSuggestion]:
    """The owner's linkable models that still lack a companion."""
    suggestions = []
    for asset in await asset_service.list_owner_models(db_session, owner_id):
        if asset.companion_key or not _is_companion_candidate(asset):
            continue
        ext = file_extension(asset.display_name)
        suggestions.append(
            CompanionSuggestion(
                key=asset.key,
                display_name=asset.display_name,
                current_format=ext,
                suggested_format=_SUGGESTED_FORMAT[ext],
                message=suggestion_message(
                    asset.display_name, asset.size_bytes, large_file_threshold
                ),
            )
        )
    return suggestions
