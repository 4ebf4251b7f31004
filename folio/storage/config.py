from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class BlobConfig:
    backend: str  # s3|local
    s3_bucket: Optional[str]
    s3_prefix: str
    public_base_url: Optional[str]  # Public URL prefix for stored objects (CDN / bucket website)
    local_dir: str
    max_upload_bytes: int


@lru_cache(maxsize=1)
def load_blob_config() -> BlobConfig:
    bucket = (os.getenv("BLOB_S3_BUCKET") or "").strip() or None
    backend = (os.getenv("BLOB_BACKEND") or "").strip().lower()
    if backend not in ("s3", "local"):
        backend = "s3" if bucket else "local"

    raw_max = (os.getenv("BLOB_MAX_BYTES") or "").strip()
    try:
        max_bytes = int(raw_max) if raw_max else DEFAULT_MAX_UPLOAD_BYTES
    except ValueError:
        max_bytes = DEFAULT_MAX_UPLOAD_BYTES
    if max_bytes <= 0:
        max_bytes = DEFAULT_MAX_UPLOAD_BYTES

    return BlobConfig(
        backend=backend,
        s3_bucket=bucket,
        s3_prefix=(os.getenv("BLOB_S3_PREFIX") or "").strip().strip("/"),
        public_base_url=(os.getenv("BLOB_PUBLIC_BASE_URL") or "").strip().rstrip("/") or None,
        local_dir=(os.getenv("BLOB_LOCAL_DIR") or "").strip() or "./data/blobs",
        max_upload_bytes=max_bytes,
    )
