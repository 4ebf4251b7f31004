"""S3 object storage for portfolio assets."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote, unquote, urlparse

from folio.core.models import BlobFile, UploadResult
from folio.core.stamps import format_iso
from folio.storage.base import resolve_pathname

_s3_client = None
_s3_client_lock = threading.Lock()


def _get_s3_client():
    """Return a cached boto3 S3 client (thread-safe lazy init)."""
    global _s3_client
    if _s3_client is not None:
        return _s3_client
    with _s3_client_lock:
        if _s3_client is not None:
            return _s3_client
        import boto3  # type: ignore[import-not-found]

        _s3_client = boto3.client("s3")
        return _s3_client


@dataclass
class S3BlobStorage:
    bucket: str
    prefix: str = ""
    public_base_url: Optional[str] = None

    def __post_init__(self) -> None:
        self.prefix = (self.prefix or "").strip("/")
        self.public_base_url = (self.public_base_url or "").rstrip("/") or f"https://{self.bucket}.s3.amazonaws.com"
        # Uses ambient AWS auth (instance role, env credentials locally, etc.)
        self._client = _get_s3_client()

    def key(self, pathname: str) -> str:
        pathname = pathname.lstrip("/")
        if self.prefix:
            return f"{self.prefix}/{pathname}"
        return pathname

    def _pathname(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + "/"):
            return key[len(self.prefix) + 1 :]
        return key

    def url_for(self, pathname: str) -> str:
        return f"{self.public_base_url}/{quote(self.key(pathname))}"

    def pathname_from_url(self, url: str) -> str:
        """Map a public URL (or bare pathname) back to the blob pathname."""
        u = (url or "").strip()
        if u.startswith(self.public_base_url + "/"):
            key = unquote(u[len(self.public_base_url) + 1 :])
        elif "://" in u:
            key = unquote(urlparse(u).path.lstrip("/"))
        else:
            key = u.lstrip("/")
        if not key:
            raise ValueError("Invalid blob URL")
        return self._pathname(key)

    def upload(
        self,
        data: bytes,
        name: str,
        *,
        content_type: str = "application/octet-stream",
        access: str = "public",
        add_random_suffix: bool = True,
    ) -> UploadResult:
        pathname = resolve_pathname(name, access=access, add_random_suffix=add_random_suffix)
        self._client.put_object(
            Bucket=self.bucket,
            Key=self.key(pathname),
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        return UploadResult(url=self.url_for(pathname), pathname=pathname)

    def list(self) -> List[BlobFile]:
        files: List[BlobFile] = []
        paginator = self._client.get_paginator("list_objects_v2")
        kwargs = {"Bucket": self.bucket}
        if self.prefix:
            kwargs["Prefix"] = self.prefix + "/"
        for page in paginator.paginate(**kwargs):
            for obj in page.get("Contents", []) or []:
                key = str(obj.get("Key") or "")
                if not key or key.endswith("/"):
                    continue
                pathname = self._pathname(key)
                lm = obj.get("LastModified")
                files.append(
                    BlobFile(
                        url=self.url_for(pathname),
                        pathname=pathname,
                        size=int(obj.get("Size") or 0),
                        uploaded_at=format_iso(lm) if isinstance(lm, datetime) else None,
                    )
                )
        return files

    def delete(self, url: str) -> None:
        # S3 DeleteObject is idempotent: deleting a missing key succeeds.
        self._client.delete_object(Bucket=self.bucket, Key=self.key(self.pathname_from_url(url)))
