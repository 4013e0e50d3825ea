"""Build the configured object store."""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import TYPE_CHECKING

from arvault.lib.storage.base import ObjectStore
from arvault.lib.storage.local import LocalObjectStore

if TYPE_CHECKING:
    from arvault.config import StorageConfig


def create_object_store(config: StorageConfig) -> ObjectStore:
    """Instantiate the backend named by ``config.backend``.

    Accepts ``local``, ``s3``, or a ``module.path:ClassName`` reference to a
    custom backend whose constructor takes the storage config.
    """
    backend = config.backend

    if backend == "local":
        return LocalObjectStore(Path(config.local_path))

    if backend == "s3":
        from arvault.lib.storage.s3 import S3ObjectStore

        if not config.s3.bucket:
            raise ValueError("storage.s3.bucket is required for the s3 backend")
        return S3ObjectStore(config.s3)

    if ":" in backend:
        module_path, class_name = backend.rsplit(":", 1)
        module = importlib.import_module(module_path)
        cls = getattr(module, class_name)
        return cls(config)

    raise ValueError(f"Unknown storage backend: {backend!r}")
