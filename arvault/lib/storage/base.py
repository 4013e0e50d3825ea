"""Object store protocol and common types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

CHUNK_SIZE = 1024 * 1024


@dataclass
class ObjectInfo:
    """Metadata for an object, as reported by the store."""

    key: str
    size: int
    etag: str
    content_type: str = "application/octet-stream"
    last_modified: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadedPart:
    part_number: int
    etag: str


@dataclass
class PendingUpload:
    """An in-progress multipart upload."""

    key: str
    upload_id: str
    initiated: datetime


class ObjectStoreError(Exception):
    """The store rejected or failed an operation."""


class NoSuchKeyError(ObjectStoreError):
    """The object disappeared between lookup and read."""


class NoSuchUploadError(ObjectStoreError):
    """The multipart upload id is unknown, completed or aborted."""


class InvalidPartError(ObjectStoreError):
    """A listed part is missing or its etag does not match."""


@runtime_checkable
class ObjectStore(Protocol):
    """Interface for object storage backends.

    Missing objects are reported as ``None`` by ``head`` rather than raised,
    so that a metadata row whose object was lost reads as not-found.
    ``stream`` yields an object in chunks of at most ``chunk_size`` bytes.
    """

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> ObjectInfo: ...

    def stream(self, key: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]: ...

    async def head(self, key: str) -> ObjectInfo | None: ...

    async def delete(self, key: str) -> None: ...

    def list_objects(self, prefix: str = "") -> AsyncIterator[ObjectInfo]: ...

    async def create_multipart_upload(
        self,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str: ...

    async def upload_part(
        self, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str: ...

    async def complete_multipart_upload(
        self, key: str, upload_id: str, parts: list[UploadedPart]
    ) -> ObjectInfo: ...

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None: ...

    def list_multipart_uploads(self) -> AsyncIterator[PendingUpload]: ...

    async def close(self) -> None: ...
