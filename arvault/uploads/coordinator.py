"""Upload session coordinator.

Owns the multipart lifecycle against the object store and writes the
final asset row. The two stores are not transactional; the rules are:

* a merged or directly written object whose row cannot be inserted is
  deleted again before the error is reported;
* deletion removes the object first, then the row;
* anything left behind by a crash is reclaimed by the sweep.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from urllib.parse import quote
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arvault.auth.tokens import Principal, UploadSessionSigner
from arvault.config import UploadConfig
from arvault.db.models.asset import Asset
from arvault.db.models.user import User
from arvault.db.services import asset_service, user_service
from arvault.lib import observability
from arvault.lib.exceptions import (
    ConsistencyError,
    FileTooLargeError,
    InvalidFormatError,
    MissingFieldError,
    NotFoundError,
    QuotaExceededError,
    StorageError,
    ValidationError,
)
from arvault.lib.hooks import AFTER_ASSET_DELETE, AFTER_UPLOAD_COMPLETE, hooks
from arvault.lib.storage import (
    InvalidPartError,
    NoSuchUploadError,
    ObjectInfo,
    ObjectStore,
    ObjectStoreError,
    UploadedPart,
)
from arvault.uploads.companion import link_companion
from arvault.uploads.keys import category_for, generate_key, is_valid_key
from arvault.uploads.quota import check_model_quota

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass
class UploadSession:
    """A multipart session as handed to the client.

    ``upload_id`` is signed for the creator; ``store_upload_id`` is the
    object store's own id.
    """

    key: str
    upload_id: str
    store_upload_id: str


@dataclass
class CompletionRequest:
    """Everything ``complete`` needs from the caller.

    ``owner_id``, ``is_public`` and ``increase_user_limit`` are honoured
    only for admin uploads.
    """

    key: str
    upload_id: str
    parts: list[UploadedPart] = field(default_factory=list)
    original_name: str | None = None
    declared_size: int | None = None
    owner_id: UUID | None = None
    is_public: bool = False
    increase_user_limit: bool = False


class UploadSessionCoordinator:
    def __init__(
        self, store: ObjectStore, config: UploadConfig, sessions: UploadSessionSigner
    ) -> None:
        self.store = store
        self.config = config
        self.sessions = sessions

    # -- multipart lifecycle --

    async def create(
        self,
        db_session: AsyncSession,
        uploader: Principal,
        file_name: str | None,
        mime_type: str | None,
        as_admin: bool = False,
    ) -> UploadSession:
        """Open a multipart session under a freshly generated key."""
        missing = [name for name, value in (("fileName", file_name), ("mimeType", mime_type)) if not value]
        if missing:
            raise MissingFieldError(*missing)

        if not as_admin and category_for(file_name) == asset_service.MODEL_CATEGORY:
            owner = await self._load_user(db_session, uploader.user_id)
            await check_model_quota(db_session, owner)

        key = generate_key(file_name)
        metadata = {
            "owner-id": str(uploader.user_id),
            "original-name": quote(file_name),
        }
        try:
            upload_id = await self.store.create_multipart_upload(key, mime_type, metadata)
        except ObjectStoreError as exc:
            raise StorageError(f"Could not start upload: {exc}") from exc

        observability.event(
            "upload.create", asset_key=key, user_id=str(uploader.user_id), file_name=file_name
        )
        return UploadSession(
            key=key,
            upload_id=self.sessions.sign(key, upload_id, uploader.user_id),
            store_upload_id=upload_id,
        )

    async def upload_part(
        self,
        uploader: Principal,
        key: str | None,
        upload_id: str | None,
        part_number: int | None,
        data: bytes,
    ) -> str:
        """Store one part and return its etag. Parts may arrive in any order."""
        missing = [
            name
            for name, value in (("key", key), ("uploadId", upload_id), ("partNumber", part_number))
            if value in (None, "")
        ]
        if missing:
            raise MissingFieldError(*missing)
        self._check_key(key)
        self._check_part_number(part_number)
        if not data:
            raise ValidationError("Part body is empty")
        if len(data) > self.config.max_size_for(category_for(key)):
            raise FileTooLargeError("Part exceeds the size limit for this file type")
        store_upload_id = self._open_session(uploader, key, upload_id)

        try:
            return await self.store.upload_part(key, store_upload_id, part_number, data)
        except NoSuchUploadError as exc:
            raise NotFoundError("Upload session not found") from exc
        except ObjectStoreError as exc:
            raise StorageError(f"Could not store part {part_number}: {exc}") from exc

    async def complete(
        self,
        db_session: AsyncSession,
        uploader: Principal,
        request: CompletionRequest,
        as_admin: bool = False,
    ) -> Asset:
        """Merge the listed parts and record the asset."""
        missing = [name for name, value in (("key", request.key), ("uploadId", request.upload_id)) if not value]
        if missing:
            raise MissingFieldError(*missing)
        self._check_key(request.key)
        parts = self._ordered_parts(request.parts)
        store_upload_id = self._open_session(uploader, request.key, request.upload_id)

        category = category_for(request.key)
        display_name = request.original_name or request.key.rsplit("/", 1)[-1]

        owner_id = uploader.user_id
        if as_admin and request.owner_id is not None:
            owner_id = request.owner_id
        owner = await self._load_user(db_session, owner_id)

        if not as_admin and category == asset_service.MODEL_CATEGORY:
            try:
                await check_model_quota(db_session, owner)
            except QuotaExceededError:
                await self._release_session(request.key, store_upload_id)
                raise

        try:
            with observability.span("upload.merge", asset_key=request.key, parts=len(parts)):
                info = await self.store.complete_multipart_upload(
                    request.key, store_upload_id, parts
                )
        except NoSuchUploadError as exc:
            raise NotFoundError("Upload session not found") from exc
        except InvalidPartError as exc:
            raise ValidationError(f"Incomplete or mismatched parts: {exc}") from exc
        except ObjectStoreError as exc:
            raise StorageError(f"Could not complete upload: {exc}") from exc

        size = await self._verified_size(request.key, info, request.declared_size, category)

        asset = await self._record(
            db_session,
            key=request.key,
            owner=owner,
            display_name=display_name,
            category=category,
            content_type=info.content_type,
            size=size,
            uploader=uploader,
            as_admin=as_admin,
            is_public=as_admin and request.is_public,
        )

        if as_admin and request.increase_user_limit and owner.id != uploader.user_id:
            try:
                await user_service.increase_max_models(db_session, owner)
            except SQLAlchemyError:
                logger.exception("Could not raise model limit for user %s", owner.id)

        observability.event(
            "upload.complete",
            asset_key=asset.key,
            user_id=str(owner.id),
            file_type=category,
            size=size,
            admin=as_admin,
        )
        return asset

    async def abort(self, uploader: Principal, key: str | None, upload_id: str | None) -> None:
        missing = [name for name, value in (("key", key), ("uploadId", upload_id)) if not value]
        if missing:
            raise MissingFieldError(*missing)
        self._check_key(key)
        store_upload_id = self._open_session(uploader, key, upload_id)
        try:
            await self.store.abort_multipart_upload(key, store_upload_id)
        except NoSuchUploadError as exc:
            raise NotFoundError("Upload session not found") from exc
        except ObjectStoreError as exc:
            raise StorageError(f"Could not abort upload: {exc}") from exc
        observability.event("upload.abort", asset_key=key)

    # -- single request upload and deletion --

    async def upload_direct(
        self,
        db_session: AsyncSession,
        uploader: Principal,
        file_name: str | None,
        mime_type: str | None,
        data: bytes,
        as_admin: bool = False,
    ) -> Asset:
        """Store a small file in one request and record it."""
        if not file_name:
            raise MissingFieldError("fileName")
        if not data:
            raise ValidationError("File body is empty")

        category = category_for(file_name)
        if len(data) > self.config.max_size_for(category):
            raise FileTooLargeError(
                details={"size": len(data), "max_size": self.config.max_size_for(category)}
            )

        owner = await self._load_user(db_session, uploader.user_id)
        if not as_admin and category == asset_service.MODEL_CATEGORY:
            await check_model_quota(db_session, owner)

        key = generate_key(file_name)
        content_type = mime_type or "application/octet-stream"
        try:
            await self.store.put(
                key,
                data,
                content_type,
                {"owner-id": str(uploader.user_id), "original-name": quote(file_name)},
            )
        except ObjectStoreError as exc:
            raise StorageError(f"Could not store file: {exc}") from exc

        asset = await self._record(
            db_session,
            key=key,
            owner=owner,
            display_name=file_name,
            category=category,
            content_type=content_type,
            size=len(data),
            uploader=uploader,
            as_admin=as_admin,
            is_public=False,
        )
        observability.event(
            "upload.direct", asset_key=key, user_id=str(owner.id), size=len(data)
        )
        return asset

    async def delete(self, db_session: AsyncSession, asset: Asset) -> None:
        """Delete the object, then the row.

        A crash between the two leaves a row without an object, which
        readers treat as not-found and the sweep removes.
        """
        key = asset.key
        try:
            await self.store.delete(key)
        except ObjectStoreError as exc:
            raise StorageError(f"Could not delete object: {exc}") from exc
        await asset_service.delete_asset_row(db_session, asset)
        observability.event("asset.delete", asset_key=key)
        await hooks.do_action(AFTER_ASSET_DELETE, key)

    # -- post-completion side effects --

    async def run_post_upload(self, session_factory: SessionFactory, asset_key: str) -> None:
        """Companion linking and notifications for a completed upload.

        Runs after the response has been sent. Nothing here may raise:
        there is no retry, so failures are only logged.
        """
        try:
            async with session_factory() as db_session:
                asset = await asset_service.get_asset_by_key(db_session, asset_key)
                if asset is None:
                    return
                try:
                    await link_companion(db_session, asset, self.config.large_file_threshold)
                except Exception:
                    logger.exception("Companion linking failed for %s", asset_key)
                    await db_session.rollback()
                    await db_session.refresh(asset)
                await hooks.do_action(AFTER_UPLOAD_COMPLETE, asset)
        except Exception:
            logger.exception("Post-upload tasks failed for %s", asset_key)

    # -- internal helpers --

    async def _load_user(self, db_session: AsyncSession, user_id: UUID) -> User:
        user = await user_service.get_user_by_id(db_session, user_id)
        if user is None:
            raise NotFoundError("User not found", details={"user_id": str(user_id)})
        return user

    def _open_session(self, uploader: Principal, key: str, upload_id: str) -> str:
        store_upload_id = self.sessions.open(upload_id, key, uploader.user_id)
        if store_upload_id is None:
            observability.event(
                "upload.session_rejected",
                level="warn",
                asset_key=key,
                user_id=str(uploader.user_id),
            )
            raise NotFoundError("Upload session not found")
        return store_upload_id

    def _check_key(self, key: str) -> None:
        if not is_valid_key(key):
            raise InvalidFormatError("Malformed object key", details={"key": key})

    def _check_part_number(self, part_number: int) -> None:
        if not 1 <= part_number <= self.config.max_part_number:
            raise ValidationError(
                f"partNumber must be between 1 and {self.config.max_part_number}"
            )

    def _ordered_parts(self, parts: list[UploadedPart]) -> list[UploadedPart]:
        if not parts:
            raise ValidationError("At least one part is required to complete an upload")
        seen: set[int] = set()
        for part in parts:
            self._check_part_number(part.part_number)
            if not part.etag:
                raise ValidationError(f"Part {part.part_number} has no etag")
            if part.part_number in seen:
                raise ValidationError(f"Part {part.part_number} is listed twice")
            seen.add(part.part_number)
        return sorted(parts, key=lambda p: p.part_number)

    async def _verified_size(
        self, key: str, info: ObjectInfo, declared_size: int | None, category: str
    ) -> int:
        size = info.size or declared_size or 0
        if declared_size is not None and info.size and declared_size != info.size:
            await self._discard(key, "declared size mismatch")
            raise ValidationError(
                "Declared size does not match uploaded bytes",
                details={"declared": declared_size, "actual": info.size},
            )
        max_size = self.config.max_size_for(category)
        if size > max_size:
            await self._discard(key, "size limit exceeded")
            raise FileTooLargeError(details={"size": size, "max_size": max_size})
        return size

    async def _record(
        self,
        db_session: AsyncSession,
        *,
        key: str,
        owner: User,
        display_name: str,
        category: str,
        content_type: str,
        size: int,
        uploader: Principal,
        as_admin: bool,
        is_public: bool,
    ) -> Asset:
        try:
            return await asset_service.insert_asset(
                db_session,
                key=key,
                owner_id=owner.id,
                display_name=display_name,
                category=category,
                content_type=content_type,
                size_bytes=size,
                is_public=is_public,
                is_admin_upload=as_admin,
                uploaded_by_admin=uploader.user_id if as_admin else None,
            )
        except SQLAlchemyError as exc:
            await db_session.rollback()
            await self._discard(key, "metadata insert failed")
            raise ConsistencyError() from exc

    async def _discard(self, key: str, reason: str) -> None:
        try:
            await self.store.delete(key)
        except ObjectStoreError:
            logger.exception("Could not delete %s after %s; the sweep will remove it", key, reason)
            return
        observability.event("upload.rollback", level="warn", asset_key=key, detail=reason)

    async def _release_session(self, key: str, upload_id: str) -> None:
        try:
            await self.store.abort_multipart_upload(key, upload_id)
        except ObjectStoreError:
            logger.warning("Could not abort upload %s for %s", upload_id, key)
