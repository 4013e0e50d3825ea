"""Reconciliation between the object store and the metadata store.

Policy: the row decides whether an asset exists, the store decides
whether its bytes do.

1. Multipart sessions older than the retention window are aborted.
2. Rows whose object is gone are deleted (a crash between object delete
   and row delete).
3. Objects without a row, older than the retention window, are deleted
   (a crash between merge and row insert). Younger ones are left alone
   because their upload may still be completing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from arvault.db.services import asset_service
from arvault.lib import observability
from arvault.lib.storage import ObjectStore, ObjectStoreError

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    aborted_uploads: list[str] = field(default_factory=list)
    dangling_rows: list[str] = field(default_factory=list)
    orphaned_objects: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "aborted_uploads": len(self.aborted_uploads),
            "dangling_rows": len(self.dangling_rows),
            "orphaned_objects": len(self.orphaned_objects),
            "errors": len(self.errors),
        }


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def sweep(
    db_session: AsyncSession,
    store: ObjectStore,
    retention: timedelta,
    now: datetime | None = None,
    dry_run: bool = False,
) -> SweepReport:
    """Run one reconciliation pass and report what was (or would be) removed."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - retention
    report = SweepReport()

    async for upload in store.list_multipart_uploads():
        if _as_utc(upload.initiated) > cutoff:
            continue
        report.aborted_uploads.append(upload.key)
        if dry_run:
            continue
        try:
            await store.abort_multipart_upload(upload.key, upload.upload_id)
        except ObjectStoreError as exc:
            report.errors.append(f"abort {upload.key}: {exc}")

    known_keys = await asset_service.list_all_keys(db_session)
    stored_keys: set[str] = set()

    async for info in store.list_objects():
        stored_keys.add(info.key)
        if info.key in known_keys:
            continue
        modified = _as_utc(info.last_modified)
        if modified is not None and modified > cutoff:
            continue
        report.orphaned_objects.append(info.key)
        if dry_run:
            continue
        try:
            await store.delete(info.key)
        except ObjectStoreError as exc:
            report.errors.append(f"delete {info.key}: {exc}")

    missing = sorted(known_keys - stored_keys)
    # Listing can lag behind writes; confirm each before deleting the row
    for asset in await asset_service.list_assets_by_keys(db_session, missing):
        if await store.head(asset.key) is not None:
            continue
        report.dangling_rows.append(asset.key)
        if not dry_run:
            await asset_service.delete_asset_row(db_session, asset)

    observability.event("sweep.complete", dry_run=dry_run, **report.as_dict())
    for error in report.errors:
        logger.warning("Sweep error: %s", error)
    return report
