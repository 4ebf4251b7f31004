"""Object storage backends for uploaded assets."""

from __future__ import annotations

import threading
from typing import Optional

from folio.storage.base import BlobStorage
from folio.storage.config import load_blob_config
from folio.storage.local_store import LocalBlobStorage
from folio.storage.s3_store import S3BlobStorage

_storage: Optional[BlobStorage] = None
_storage_lock = threading.Lock()


def get_blob_storage() -> BlobStorage:
    """
    Return a cached blob storage instance.

    Constructing boto3 clients repeatedly is wasteful, so one instance serves the process.
    """
    global _storage
    if _storage is not None:
        return _storage
    with _storage_lock:
        if _storage is not None:
            return _storage
        cfg = load_blob_config()
        if cfg.backend == "s3":
            if not cfg.s3_bucket:
                raise ValueError("BLOB_BACKEND=s3 requires BLOB_S3_BUCKET")
            _storage = S3BlobStorage(bucket=cfg.s3_bucket, prefix=cfg.s3_prefix, public_base_url=cfg.public_base_url)
        else:
            _storage = LocalBlobStorage(base_dir=cfg.local_dir, public_base_url=cfg.public_base_url)
        return _storage


def set_blob_storage(storage: Optional[BlobStorage]) -> None:
    """Install (or clear, with None) the process-wide storage. Used by tests."""
    global _storage
    with _storage_lock:
        _storage = storage


__all__ = ["BlobStorage", "LocalBlobStorage", "S3BlobStorage", "get_blob_storage", "set_blob_storage"]
