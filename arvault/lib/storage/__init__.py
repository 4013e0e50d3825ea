"""Object storage with multipart upload support."""

from arvault.lib.storage.base import (
    InvalidPartError,
    NoSuchKeyError,
    NoSuchUploadError,
    ObjectInfo,
    ObjectStore,
    ObjectStoreError,
    PendingUpload,
    UploadedPart,
)
from arvault.lib.storage.factory import create_object_store
from arvault.lib.storage.local import LocalObjectStore

__all__ = [
    "InvalidPartError",
    "LocalObjectStore",
    "NoSuchKeyError",
    "NoSuchUploadError",
    "ObjectInfo",
    "ObjectStore",
    "ObjectStoreError",
    "PendingUpload",
    "UploadedPart",
    "create_object_store",
]
