"""
Schema versioning for the Postgres docstore.

Each `migrations/NNNN_name.sql` file runs once, in filename order, inside its own
transaction. The recorded sha256 of an applied file must never change; editing a shipped
migration is reported as drift instead of silently re-running it.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from folio.docstore.config import DocstoreConfig, build_postgres_dsn, load_docstore_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
VERSIONS_TABLE = "schema_migrations"

# pg_advisory_lock key shared by every console replica.
LOCK_KEY = 0x464F4C494F  # "FOLIO"


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    checksum: str
    sql: str

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        raw = path.read_bytes()
        return cls(
            version=path.stem.partition("_")[0],
            path=path,
            checksum=hashlib.sha256(raw).hexdigest(),
            sql=raw.decode("utf-8"),
        )


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    if not directory.is_dir():
        return []
    return [Migration.from_file(p) for p in sorted(directory.glob("*.sql"))]


def pending_migrations(applied: Dict[str, str], migrations: Sequence[Migration]) -> List[Migration]:
    """Migrations not yet recorded in `applied` (version -> checksum).

    Raises RuntimeError when an applied file no longer matches its recorded checksum.
    """
    out: List[Migration] = []
    for m in migrations:
        recorded = applied.get(m.version)
        if recorded is None:
            out.append(m)
        elif recorded != m.checksum:
            raise RuntimeError(
                f"Migration checksum mismatch for {m.path.name}: recorded={recorded[:12]} file={m.checksum[:12]}"
            )
    return out


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


def _applied_versions(conn) -> Dict[str, str]:
    conn.execute(
        f"CREATE TABLE IF NOT EXISTS {VERSIONS_TABLE} ("
        " version text PRIMARY KEY,"
        " checksum text NOT NULL,"
        " applied_at timestamptz NOT NULL DEFAULT now())"
    )
    return {str(v): str(c) for v, c in conn.execute(f"SELECT version, checksum FROM {VERSIONS_TABLE}").fetchall()}


def apply_migrations(*, dsn: str, migrations: Optional[Iterable[Migration]] = None) -> Tuple[int, List[str]]:
    """Apply whatever is pending and return (count, versions)."""
    migs = load_migrations() if migrations is None else list(migrations)
    done: List[str] = []

    with _connect(dsn) as conn:
        # Serialize concurrent replicas starting at once.
        conn.execute("SELECT pg_advisory_lock(%s)", (LOCK_KEY,))
        try:
            for m in pending_migrations(_applied_versions(conn), migs):
                logger.info("Applying migration %s", m.path.name)
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        f"INSERT INTO {VERSIONS_TABLE} (version, checksum) VALUES (%s, %s)",
                        (m.version, m.checksum),
                    )
                done.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s)", (LOCK_KEY,))

    return len(done), done


def _summary(versions: List[str]) -> str:
    if not versions:
        return "No pending migrations"
    return f"Applied {len(versions)} migration(s): {', '.join(versions)}"


def maybe_auto_migrate(cfg: Optional[DocstoreConfig] = None) -> Tuple[bool, str]:
    """Startup hook. Returns (attempted, message) and never raises."""
    cfg = cfg or load_docstore_config()
    if not cfg.db_auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    try:
        _, versions = apply_migrations(dsn=dsn)
    except Exception as e:
        return True, f"Migration failed: {e}"
    return True, _summary(versions)


def main() -> int:
    dsn = build_postgres_dsn(load_docstore_config())
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).")
        return 2
    try:
        _, versions = apply_migrations(dsn=dsn)
    except RuntimeError as e:
        print(f"Error: {e}")
        return 1
    print(_summary(versions) + ".")
    return 0
