from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

import folio.docstore.postgres_store as pg
from folio.docstore.base import DocumentRef
from folio.docstore.migrate import apply_migrations, load_migrations, maybe_auto_migrate, pending_migrations

REF = DocumentRef(collection="portfolio", doc_id="projects")


class _FakeDB:
    """Just enough of a psycopg connection to exercise the document SQL."""

    def __init__(self) -> None:
        self.rows: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.statements: List[str] = []
        self.commits = 0
        self._result: Optional[tuple] = None

    # connection protocol
    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def cursor(self):
        return self

    def commit(self) -> None:
        self.commits += 1

    # cursor protocol
    def execute(self, sql: str, params: tuple = ()) -> None:
        self.statements.append(" ".join(sql.split()))
        if sql.lstrip().startswith("SELECT data"):
            data = self.rows.get((params[0], params[1]))
            self._result = (data,) if data is not None else None
        elif sql.lstrip().startswith("INSERT INTO documents"):
            self.rows[(params[0], params[1])] = json.loads(params[2])

    def fetchone(self):
        return self._result


@pytest.fixture
def db() -> _FakeDB:
    return _FakeDB()


@pytest.fixture
def store(db) -> pg.PostgresDocumentStore:
    return pg.PostgresDocumentStore("postgresql://test", connect=lambda _dsn: db)


def test_missing_document(store) -> None:
    assert store.get_document(REF).exists is False


def test_union_creates_document_and_locks_row(store, db) -> None:
    store.array_union(REF, "projects", {"id": "1"})
    store.array_union(REF, "projects", {"id": "1"})

    assert db.rows[("portfolio", "projects")] == {"projects": [{"id": "1"}]}
    assert any(s.endswith("FOR UPDATE") for s in db.statements)
    assert db.commits == 2


def test_remove_on_missing_document_writes_nothing(store, db) -> None:
    store.array_remove(REF, "projects", {"id": "1"})
    assert db.rows == {}
    assert not any(s.startswith("INSERT") for s in db.statements)


def test_replace_keeps_other_fields(store, db) -> None:
    db.rows[("portfolio", "projects")] = {"projects": [{"id": "1", "v": 1}], "owner": "me"}
    store.array_replace(REF, "projects", {"id": "1", "v": 1}, {"id": "1", "v": 2})
    assert db.rows[("portfolio", "projects")] == {"projects": [{"id": "1", "v": 2}], "owner": "me"}
    assert sum(1 for s in db.statements if s.startswith("INSERT")) == 1


def test_set_document_upserts(store, db) -> None:
    store.set_document(REF, {"projects": []})
    assert store.get_document(REF).data == {"projects": []}


def test_migrations_are_ordered_and_versioned() -> None:
    versions = [m.version for m in load_migrations()]
    assert versions == sorted(versions)
    assert versions[:2] == ["0001", "0002"]
    assert "local_users" in load_migrations()[1].sql


class _MigrationConn:
    def __init__(self, applied: Dict[str, str]) -> None:
        self.applied = dict(applied)
        self.executed: List[str] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def execute(self, sql: str, params: tuple = ()):
        self.executed.append(sql)
        if sql.startswith("INSERT INTO schema_migrations"):
            self.applied[params[0]] = params[1]
        conn = self

        class _Result:
            def fetchall(self_inner):
                return list(conn.applied.items())

        return _Result()

    def transaction(self):
        return self


def test_apply_migrations_skips_applied(monkeypatch) -> None:
    migs = load_migrations()
    conn = _MigrationConn({migs[0].version: migs[0].checksum})
    monkeypatch.setattr("folio.docstore.migrate._connect", lambda _dsn: conn)

    n, versions = apply_migrations(dsn="postgresql://test", migrations=migs)

    assert versions == [m.version for m in migs[1:]]
    assert n == len(migs) - 1
    assert conn.executed[0].startswith("SELECT pg_advisory_lock")
    assert conn.executed[-1].startswith("SELECT pg_advisory_unlock")


def test_apply_migrations_detects_checksum_drift(monkeypatch) -> None:
    migs = load_migrations()
    conn = _MigrationConn({migs[0].version: "0" * 64})
    monkeypatch.setattr("folio.docstore.migrate._connect", lambda _dsn: conn)
    with pytest.raises(RuntimeError, match="checksum mismatch"):
        apply_migrations(dsn="postgresql://test", migrations=migs)


def test_auto_migrate_disabled_by_default() -> None:
    did_attempt, msg = maybe_auto_migrate()
    assert did_attempt is False
    assert "disabled" in msg


def test_pending_migrations_lists_only_unrecorded_versions() -> None:
    migs = load_migrations()
    assert pending_migrations({}, migs) == migs
    applied = {m.version: m.checksum for m in migs}
    assert pending_migrations(applied, migs) == []
