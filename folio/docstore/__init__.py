"""
Document store backends.

Collection stores only see the `DocumentStore` protocol; the backend is picked from env
(`DOCSTORE_BACKEND`, defaulting to Postgres when a connection is configured).
"""

from __future__ import annotations

import threading
from typing import Optional

from folio.docstore.base import DocumentRef, DocumentSnapshot, DocumentStore
from folio.docstore.config import build_postgres_dsn, load_docstore_config
from folio.docstore.local_store import LocalDocumentStore
from folio.docstore.postgres_store import PostgresDocumentStore

_store: Optional[DocumentStore] = None
_store_lock = threading.Lock()


def get_document_store() -> DocumentStore:
    """Return the process-wide document store (thread-safe lazy init)."""
    global _store
    if _store is not None:
        return _store
    with _store_lock:
        if _store is not None:
            return _store
        cfg = load_docstore_config()
        if cfg.backend == "postgres":
            dsn = build_postgres_dsn(cfg)
            if not dsn:
                raise ValueError("DOCSTORE_BACKEND=postgres but POSTGRES_DSN / POSTGRES_* are not set")
            _store = PostgresDocumentStore(dsn)
        else:
            _store = LocalDocumentStore(base_dir=cfg.local_dir)
        return _store


def reset_document_store() -> None:
    """Drop the cached store (tests, config reloads)."""
    global _store
    with _store_lock:
        _store = None


__all__ = [
    "DocumentRef",
    "DocumentSnapshot",
    "DocumentStore",
    "LocalDocumentStore",
    "PostgresDocumentStore",
    "get_document_store",
    "reset_document_store",
]
