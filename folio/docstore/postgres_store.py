"""Postgres-backed document store (one JSONB row per document)."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

from folio.docstore.base import DocumentRef, DocumentSnapshot, replace_in_array


def _connect(dsn: str):
    # Lazy import so the console can run on the local backend without DB deps.
    import psycopg  # type: ignore[import-not-found]

    return psycopg.connect(dsn)


def _dump(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class PostgresDocumentStore:
    """
    Documents live in `documents(collection, doc_id, data jsonb)`.

    Array mutations run as a single transaction: the row is locked with `SELECT ... FOR UPDATE`,
    the array is rewritten, and the row is upserted. This gives value-based union/remove the
    same semantics as the local backend and makes `array_replace` one atomic write.
    """

    def __init__(self, dsn: str, *, connect: Optional[Callable[[str], Any]] = None) -> None:
        self.dsn = dsn
        self._connect = connect or _connect

    def get_document(self, ref: DocumentRef) -> DocumentSnapshot:
        with self._connect(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT data FROM documents WHERE collection = %s AND doc_id = %s",
                    (ref.collection, ref.doc_id),
                )
                row = cur.fetchone()
        if not row:
            return DocumentSnapshot(exists=False)
        data = row[0]
        return DocumentSnapshot(exists=True, data=data if isinstance(data, dict) else {})

    def _mutate_array(self, ref: DocumentRef, field: str, fn: Callable[[List[Any]], List[Any]], *, create: bool) -> None:
        with self._connect(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT data FROM documents WHERE collection = %s AND doc_id = %s FOR UPDATE",
                    (ref.collection, ref.doc_id),
                )
                row = cur.fetchone()
                if not row and not create:
                    return
                data: Dict[str, Any] = dict(row[0]) if row and isinstance(row[0], dict) else {}
                items = data.get(field)
                data[field] = fn(list(items) if isinstance(items, list) else [])
                cur.execute(
                    """
                    INSERT INTO documents (collection, doc_id, data)
                    VALUES (%s, %s, %s::jsonb)
                    ON CONFLICT (collection, doc_id)
                    DO UPDATE SET data = EXCLUDED.data, updated_at = now()
                    """,
                    (ref.collection, ref.doc_id, _dump(data)),
                )
            conn.commit()

    def array_union(self, ref: DocumentRef, field: str, value: Any) -> None:
        def _union(items: List[Any]) -> List[Any]:
            if value not in items:
                items.append(value)
            return items

        self._mutate_array(ref, field, _union, create=True)

    def array_remove(self, ref: DocumentRef, field: str, value: Any) -> None:
        self._mutate_array(ref, field, lambda items: [x for x in items if x != value], create=False)

    def array_replace(self, ref: DocumentRef, field: str, old: Any, new: Any) -> None:
        self._mutate_array(ref, field, lambda items: replace_in_array(items, old, new), create=True)

    def set_document(self, ref: DocumentRef, data: Dict[str, Any]) -> None:
        with self._connect(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO documents (collection, doc_id, data)
                    VALUES (%s, %s, %s::jsonb)
                    ON CONFLICT (collection, doc_id)
                    DO UPDATE SET data = EXCLUDED.data, updated_at = now()
                    """,
                    (ref.collection, ref.doc_id, _dump(dict(data))),
                )
            conn.commit()
