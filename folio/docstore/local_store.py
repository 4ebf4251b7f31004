"""Local filesystem document store for development (fallback when Postgres is not configured)."""

from __future__ import annotations

import json
import os
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from folio.docstore.base import DocumentRef, DocumentSnapshot, replace_in_array


def _safe_component(value: str) -> str:
    value = (value or "").strip()
    if not value:
        return "unknown"
    return re.sub(r"[^A-Za-z0-9._-]+", "_", value)


@dataclass
class LocalDocumentStore:
    """One JSON file per document under `base_dir/<collection>/<doc_id>.json`."""

    base_dir: str = "./data/documents"
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        """Ensure base directory exists."""
        self.base_dir = os.path.abspath(self.base_dir)
        Path(self.base_dir).mkdir(parents=True, exist_ok=True)

    def _path(self, ref: DocumentRef) -> Path:
        return Path(self.base_dir) / _safe_component(ref.collection) / f"{_safe_component(ref.doc_id)}.json"

    def _read(self, ref: DocumentRef) -> DocumentSnapshot:
        path = self._path(ref)
        if not path.exists():
            return DocumentSnapshot(exists=False)
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"Document {ref.path} is not a JSON object")
        return DocumentSnapshot(exists=True, data=data)

    def _write(self, ref: DocumentRef, data: Dict[str, Any]) -> None:
        path = self._path(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, sort_keys=True, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def get_document(self, ref: DocumentRef) -> DocumentSnapshot:
        with self._lock:
            return self._read(ref)

    def array_union(self, ref: DocumentRef, field: str, value: Any) -> None:
        with self._lock:
            snap = self._read(ref)
            data = dict(snap.data)
            items = data.get(field)
            items = list(items) if isinstance(items, list) else []
            if value not in items:
                items.append(value)
            data[field] = items
            self._write(ref, data)

    def array_remove(self, ref: DocumentRef, field: str, value: Any) -> None:
        with self._lock:
            snap = self._read(ref)
            if not snap.exists:
                return
            data = dict(snap.data)
            items = data.get(field)
            data[field] = [x for x in items if x != value] if isinstance(items, list) else []
            self._write(ref, data)

    def array_replace(self, ref: DocumentRef, field: str, old: Any, new: Any) -> None:
        with self._lock:
            snap = self._read(ref)
            data = dict(snap.data)
            data[field] = replace_in_array(data.get(field), old, new)
            self._write(ref, data)

    def set_document(self, ref: DocumentRef, data: Dict[str, Any]) -> None:
        with self._lock:
            self._write(ref, dict(data))
