"""Local filesystem object store.

Layout under ``base_path``::

    objects/<key>              object bytes
    meta/<key>.json            content type, etag and custom metadata
    multipart/<upload_id>/     manifest.json plus one file per part

Multipart uploads follow S3 semantics: parts may be written in any order,
completion lists the parts to keep, and the final etag is the md5 of the
part digests suffixed with the part count.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
import shutil
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

from arvault.lib.storage.base import (
    CHUNK_SIZE,
    InvalidPartError,
    NoSuchKeyError,
    NoSuchUploadError,
    ObjectInfo,
    ObjectStoreError,
    PendingUpload,
    UploadedPart,
)


def _strip_etag(etag: str) -> str:
    return etag.strip().strip('"')


class LocalObjectStore:
    """Store objects on the local filesystem."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        self._objects = self._base_path / "objects"
        self._meta = self._base_path / "meta"
        self._multipart = self._base_path / "multipart"

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> ObjectInfo:
        etag = hashlib.md5(data).hexdigest()
        await asyncio.to_thread(self._write_object, key, data, content_type, etag, metadata or {})
        return await self._require_head(key)

    async def stream(self, key: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        path = self._object_path(key)
        try:
            handle = await asyncio.to_thread(path.open, "rb")
        except FileNotFoundError:
            raise NoSuchKeyError(key) from None
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def head(self, key: str) -> ObjectInfo | None:
        return await asyncio.to_thread(self._read_info, key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_object, key)

    async def list_objects(self, prefix: str = "") -> AsyncIterator[ObjectInfo]:
        keys = await asyncio.to_thread(self._walk_keys)
        for key in keys:
            if not key.startswith(prefix):
                continue
            info = await self.head(key)
            if info is not None:
                yield info

    async def create_multipart_upload(
        self,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        self._object_path(key)  # rejects unsafe keys
        upload_id = uuid.uuid4().hex
        manifest = {
            "key": key,
            "content_type": content_type,
            "metadata": metadata or {},
            "initiated": datetime.now(timezone.utc).isoformat(),
        }
        await asyncio.to_thread(self._write_manifest, upload_id, manifest)
        return upload_id

    async def upload_part(
        self, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        await asyncio.to_thread(self._load_manifest, key, upload_id)
        etag = hashlib.md5(data).hexdigest()
        part_path = self._upload_dir(upload_id) / f"{part_number:05d}.part"
        await asyncio.to_thread(part_path.write_bytes, data)
        return f'"{etag}"'

    async def complete_multipart_upload(
        self, key: str, upload_id: str, parts: list[UploadedPart]
    ) -> ObjectInfo:
        manifest = await asyncio.to_thread(self._load_manifest, key, upload_id)
        await asyncio.to_thread(self._assemble, key, upload_id, parts, manifest)
        return await self._require_head(key)

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        await asyncio.to_thread(self._load_manifest, key, upload_id)
        await asyncio.to_thread(shutil.rmtree, self._upload_dir(upload_id), True)

    async def list_multipart_uploads(self) -> AsyncIterator[PendingUpload]:
        manifests = await asyncio.to_thread(self._read_manifests)
        for upload_id, manifest in manifests:
            yield PendingUpload(
                key=manifest["key"],
                upload_id=upload_id,
                initiated=datetime.fromisoformat(manifest["initiated"]),
            )

    async def close(self) -> None:
        """No persistent resources to clean up."""

    # -- internal helpers --

    def _object_path(self, key: str) -> Path:
        return self._safe_join(self._objects, key)

    def _meta_path(self, key: str) -> Path:
        return self._safe_join(self._meta, f"{key}.json")

    def _upload_dir(self, upload_id: str) -> Path:
        if not upload_id.isalnum():
            raise NoSuchUploadError(upload_id)
        return self._multipart / upload_id

    @staticmethod
    def _safe_join(root: Path, key: str) -> Path:
        if not key or key.startswith("/") or ".." in key.split("/"):
            raise ObjectStoreError(f"Invalid object key: {key!r}")
        return root / key

    def _write_object(
        self,
        key: str,
        data: bytes,
        content_type: str,
        etag: str,
        metadata: dict[str, str],
    ) -> None:
        path = self._object_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        self._write_meta(key, content_type, etag, metadata)

    def _write_meta(self, key: str, content_type: str, etag: str, metadata: dict[str, str]) -> None:
        meta_path = self._meta_path(key)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        meta_path.write_text(
            json.dumps({"content_type": content_type, "etag": etag, "metadata": metadata})
        )

    def _read_info(self, key: str) -> ObjectInfo | None:
        path = self._object_path(key)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        try:
            meta = json.loads(self._meta_path(key).read_text())
        except FileNotFoundError:
            meta = {}
        return ObjectInfo(
            key=key,
            size=stat.st_size,
            etag=meta.get("etag", ""),
            content_type=meta.get("content_type", "application/octet-stream"),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            metadata=meta.get("metadata", {}),
        )

    async def _require_head(self, key: str) -> ObjectInfo:
        info = await self.head(key)
        if info is None:
            raise ObjectStoreError(f"Object {key!r} vanished after write")
        return info

    def _delete_object(self, key: str) -> None:
        self._object_path(key).unlink(missing_ok=True)
        self._meta_path(key).unlink(missing_ok=True)

    def _walk_keys(self) -> list[str]:
        if not self._objects.is_dir():
            return []
        return sorted(
            str(p.relative_to(self._objects)) for p in self._objects.rglob("*") if p.is_file()
        )

    def _write_manifest(self, upload_id: str, manifest: dict) -> None:
        upload_dir = self._upload_dir(upload_id)
        upload_dir.mkdir(parents=True, exist_ok=True)
        (upload_dir / "manifest.json").write_text(json.dumps(manifest))

    def _load_manifest(self, key: str, upload_id: str) -> dict:
        try:
            manifest = json.loads((self._upload_dir(upload_id) / "manifest.json").read_text())
        except FileNotFoundError:
            raise NoSuchUploadError(upload_id) from None
        if manifest["key"] != key:
            raise NoSuchUploadError(upload_id)
        return manifest

    def _read_manifests(self) -> list[tuple[str, dict]]:
        if not self._multipart.is_dir():
            return []
        found = []
        for manifest_path in sorted(self._multipart.glob("*/manifest.json")):
            found.append((manifest_path.parent.name, json.loads(manifest_path.read_text())))
        return found

    def _assemble(
        self, key: str, upload_id: str, parts: list[UploadedPart], manifest: dict
    ) -> None:
        """Concatenate the listed parts into the object, one chunk at a time."""
        upload_dir = self._upload_dir(upload_id)
        staged = upload_dir / "assembled"
        try:
            with staged.open("wb") as out:
                digests = [self._append_part(upload_dir, part, out) for part in parts]
        except Exception:
            staged.unlink(missing_ok=True)
            raise

        path = self._object_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(staged, path)
        etag = f"{hashlib.md5(b''.join(digests)).hexdigest()}-{len(parts)}"
        self._write_meta(key, manifest["content_type"], etag, manifest["metadata"])
        shutil.rmtree(upload_dir, ignore_errors=True)

    @staticmethod
    def _append_part(upload_dir: Path, part: UploadedPart, out) -> bytes:
        """Copy one part onto *out* and return its md5 digest."""
        part_path = upload_dir / f"{part.part_number:05d}.part"
        digest = hashlib.md5()
        try:
            with part_path.open("rb") as source:
                while True:
                    chunk = source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    digest.update(chunk)
                    out.write(chunk)
        except FileNotFoundError:
            raise InvalidPartError(f"Part {part.part_number} was never uploaded") from None
        if digest.hexdigest() != _strip_etag(part.etag):
            raise InvalidPartError(f"ETag mismatch for part {part.part_number}")
        return digest.digest()
