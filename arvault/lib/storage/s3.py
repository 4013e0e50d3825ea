"""S3-compatible object store (AWS S3, Cloudflare R2, MinIO)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import aioboto3
from botocore.exceptions import ClientError

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

if TYPE_CHECKING:
    from arvault.config import S3Config

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class S3ObjectStore:
    """Store objects in an S3-compatible bucket."""

    def __init__(self, config: S3Config) -> None:
        self._config = config
        self._session = aioboto3.Session()

    def _client_kwargs(self) -> dict:
        kwargs: dict = {
            "region_name": self._config.region,
        }
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        if self._config.access_key_id:
            kwargs["aws_access_key_id"] = self._config.access_key_id
        if self._config.secret_access_key:
            kwargs["aws_secret_access_key"] = self._config.secret_access_key
        return kwargs

    def _client(self):
        return self._session.client("s3", **self._client_kwargs())

    def _full_key(self, key: str) -> str:
        if self._config.prefix:
            return f"{self._config.prefix.rstrip('/')}/{key}"
        return key

    def _relative_key(self, full_key: str) -> str:
        if self._config.prefix:
            prefix = self._config.prefix.rstrip("/") + "/"
            if full_key.startswith(prefix):
                return full_key[len(prefix):]
        return full_key

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> ObjectInfo:
        async with self._client() as s3:
            try:
                await s3.put_object(
                    Bucket=self._config.bucket,
                    Key=self._full_key(key),
                    Body=data,
                    ContentType=content_type,
                    Metadata=metadata or {},
                )
            except ClientError as exc:
                raise ObjectStoreError(f"put {key!r} failed: {_error_code(exc)}") from exc
        info = await self.head(key)
        if info is None:
            raise ObjectStoreError(f"Object {key!r} vanished after write")
        return info

    async def stream(self, key: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self._config.bucket, Key=self._full_key(key))
            except ClientError as exc:
                if _error_code(exc) in _MISSING_CODES:
                    raise NoSuchKeyError(key) from exc
                raise ObjectStoreError(f"get {key!r} failed: {_error_code(exc)}") from exc
            body = response["Body"]
            try:
                async for chunk in body.iter_chunks(chunk_size):
                    yield chunk
            finally:
                body.close()

    async def head(self, key: str) -> ObjectInfo | None:
        async with self._client() as s3:
            try:
                response = await s3.head_object(Bucket=self._config.bucket, Key=self._full_key(key))
            except ClientError as exc:
                if _error_code(exc) in _MISSING_CODES:
                    return None
                raise ObjectStoreError(f"head {key!r} failed: {_error_code(exc)}") from exc
        return self._info_from_response(key, response)

    async def delete(self, key: str) -> None:
        async with self._client() as s3:
            try:
                await s3.delete_object(Bucket=self._config.bucket, Key=self._full_key(key))
            except ClientError as exc:
                raise ObjectStoreError(f"delete {key!r} failed: {_error_code(exc)}") from exc

    async def list_objects(self, prefix: str = "") -> AsyncIterator[ObjectInfo]:
        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(
                Bucket=self._config.bucket, Prefix=self._full_key(prefix)
            ):
                for obj in page.get("Contents", []):
                    yield ObjectInfo(
                        key=self._relative_key(obj["Key"]),
                        size=obj["Size"],
                        etag=obj.get("ETag", "").strip('"'),
                        last_modified=obj.get("LastModified"),
                    )

    async def create_multipart_upload(
        self,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        async with self._client() as s3:
            try:
                response = await s3.create_multipart_upload(
                    Bucket=self._config.bucket,
                    Key=self._full_key(key),
                    ContentType=content_type,
                    Metadata=metadata or {},
                )
            except ClientError as exc:
                raise ObjectStoreError(f"create upload failed: {_error_code(exc)}") from exc
        return response["UploadId"]

    async def upload_part(
        self, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        async with self._client() as s3:
            try:
                response = await s3.upload_part(
                    Bucket=self._config.bucket,
                    Key=self._full_key(key),
                    UploadId=upload_id,
                    PartNumber=part_number,
                    Body=data,
                )
            except ClientError as exc:
                if _error_code(exc) == "NoSuchUpload":
                    raise NoSuchUploadError(upload_id) from exc
                raise ObjectStoreError(f"upload_part failed: {_error_code(exc)}") from exc
        return response["ETag"]

    async def complete_multipart_upload(
        self, key: str, upload_id: str, parts: list[UploadedPart]
    ) -> ObjectInfo:
        async with self._client() as s3:
            try:
                await s3.complete_multipart_upload(
                    Bucket=self._config.bucket,
                    Key=self._full_key(key),
                    UploadId=upload_id,
                    MultipartUpload={
                        "Parts": [
                            {"PartNumber": p.part_number, "ETag": p.etag} for p in parts
                        ]
                    },
                )
            except ClientError as exc:
                code = _error_code(exc)
                if code == "NoSuchUpload":
                    raise NoSuchUploadError(upload_id) from exc
                if code in ("InvalidPart", "InvalidPartOrder", "EntityTooSmall"):
                    raise InvalidPartError(code) from exc
                raise ObjectStoreError(f"complete failed: {code}") from exc
        info = await self.head(key)
        if info is None:
            raise ObjectStoreError(f"Object {key!r} missing after multipart completion")
        return info

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        async with self._client() as s3:
            try:
                await s3.abort_multipart_upload(
                    Bucket=self._config.bucket,
                    Key=self._full_key(key),
                    UploadId=upload_id,
                )
            except ClientError as exc:
                if _error_code(exc) == "NoSuchUpload":
                    raise NoSuchUploadError(upload_id) from exc
                raise ObjectStoreError(f"abort failed: {_error_code(exc)}") from exc

    async def list_multipart_uploads(self) -> AsyncIterator[PendingUpload]:
        async with self._client() as s3:
            paginator = s3.get_paginator("list_multipart_uploads")
            async for page in paginator.paginate(
                Bucket=self._config.bucket, Prefix=self._full_key("")
            ):
                for upload in page.get("Uploads", []):
                    yield PendingUpload(
                        key=self._relative_key(upload["Key"]),
                        upload_id=upload["UploadId"],
                        initiated=upload["Initiated"],
                    )

    async def close(self) -> None:
        """No persistent resources to clean up."""

    def _info_from_response(self, key: str, response: dict) -> ObjectInfo:
        return ObjectInfo(
            key=key,
            size=response.get("ContentLength", 0),
            etag=response.get("ETag", "").strip('"'),
            content_type=response.get("ContentType", "application/octet-stream"),
            last_modified=response.get("LastModified"),
            metadata=response.get("Metadata", {}),
        )
