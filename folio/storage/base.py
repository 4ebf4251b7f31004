from __future__ import annotations

import os
import posixpath
import re
from typing import List, Protocol

from folio.core.models import BlobFile, UploadResult


class BlobStorage(Protocol):
    """Object storage for portfolio assets (images, CVs, videos)."""

    def upload(
        self,
        data: bytes,
        name: str,
        *,
        content_type: str = "application/octet-stream",
        access: str = "public",
        add_random_suffix: bool = True,
    ) -> UploadResult: ...

    def list(self) -> List[BlobFile]: ...

    def delete(self, url: str) -> None: ...


def sanitize_pathname(name: str) -> str:
    """
    Normalize a user-supplied blob name into a relative object path.

    Keeps `/` separators (folders) but drops empty, `.` and `..` segments.
    """
    parts = []
    for seg in (name or "").replace("\\", "/").split("/"):
        seg = re.sub(r"[^A-Za-z0-9._ -]+", "_", seg).strip()
        if not seg or seg in (".", ".."):
            continue
        parts.append(seg)
    return "/".join(parts)


def with_random_suffix(pathname: str) -> str:
    """`photos/me.png` -> `photos/me-3f9a1c2b.png`."""
    head, tail = posixpath.split(pathname)
    stem, ext = os.path.splitext(tail)
    suffixed = f"{stem}-{os.urandom(4).hex()}{ext}"
    return posixpath.join(head, suffixed) if head else suffixed


def resolve_pathname(name: str, *, access: str, add_random_suffix: bool) -> str:
    if access != "public":
        raise ValueError("Only public access is supported")
    pathname = sanitize_pathname(name)
    if not pathname:
        raise ValueError("Invalid file name")
    return with_random_suffix(pathname) if add_random_suffix else pathname
