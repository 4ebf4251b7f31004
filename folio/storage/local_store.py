"""Local filesystem object storage for development (fallback when S3 is not configured)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote, unquote, urlparse

from folio.core.models import BlobFile, UploadResult
from folio.core.stamps import format_iso
from folio.storage.base import resolve_pathname, sanitize_pathname

LOCAL_URL_PREFIX = "/blobs"


@dataclass
class LocalBlobStorage:
    """Local filesystem storage compatible with S3BlobStorage interface."""

    base_dir: str = "./data/blobs"
    public_base_url: Optional[str] = None

    def __post_init__(self) -> None:
        """Ensure base directory exists."""
        self.base_dir = os.path.abspath(self.base_dir)
        Path(self.base_dir).mkdir(parents=True, exist_ok=True)
        self.public_base_url = (self.public_base_url or "").rstrip("/") or LOCAL_URL_PREFIX

    def path_for(self, pathname: str) -> Path:
        clean = sanitize_pathname(pathname)
        if not clean:
            raise ValueError("Invalid pathname")
        return Path(self.base_dir) / clean

    def url_for(self, pathname: str) -> str:
        return f"{self.public_base_url}/{quote(pathname)}"

    def pathname_from_url(self, url: str) -> str:
        u = (url or "").strip()
        if u.startswith(self.public_base_url + "/"):
            rel = u[len(self.public_base_url) + 1 :]
        elif "://" in u:
            rel = urlparse(u).path
            prefix = urlparse(self.public_base_url).path.rstrip("/")
            if prefix and rel.startswith(prefix + "/"):
                rel = rel[len(prefix) + 1 :]
        else:
            rel = u
        pathname = sanitize_pathname(unquote(rel))
        if not pathname:
            raise ValueError("Invalid blob URL")
        return pathname

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
        path = self.path_for(pathname)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return UploadResult(url=self.url_for(pathname), pathname=pathname)

    def list(self) -> List[BlobFile]:
        files: List[BlobFile] = []
        root = Path(self.base_dir)
        for path in sorted(root.rglob("*")):
            if not path.is_file():
                continue
            pathname = path.relative_to(root).as_posix()
            st = path.stat()
            files.append(
                BlobFile(
                    url=self.url_for(pathname),
                    pathname=pathname,
                    size=st.st_size,
                    uploaded_at=format_iso(datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)),
                )
            )
        return files

    def delete(self, url: str) -> None:
        path = self.path_for(self.pathname_from_url(url))
        if path.exists():
            path.unlink()
