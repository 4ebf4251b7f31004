from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from folio.docstore.base import DocumentRef


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_ref(name: str, default: str) -> DocumentRef:
    """Parse `collection/doc_id` from env (falls back to `default`)."""
    raw = (os.getenv(name) or "").strip().strip("/") or default
    collection, _, doc_id = raw.partition("/")
    return DocumentRef(collection=collection or "portfolio", doc_id=doc_id or "main")


@dataclass(frozen=True)
class DocstoreConfig:
    backend: str  # postgres|local
    local_dir: str
    db_auto_migrate: bool

    # Postgres connection (either dsn or parts)
    postgres_dsn: Optional[str]
    postgres_host: Optional[str]
    postgres_port: int
    postgres_db: Optional[str]
    postgres_user: Optional[str]
    postgres_password: Optional[str]

    # One document per collection; each holds its records in a single array field.
    projects_ref: DocumentRef
    certifications_ref: DocumentRef
    timeline_ref: DocumentRef
    skills_ref: DocumentRef
    key_skills_ref: DocumentRef


@lru_cache(maxsize=1)
def load_docstore_config() -> DocstoreConfig:
    dsn = (os.getenv("POSTGRES_DSN") or "").strip() or None
    host = (os.getenv("POSTGRES_HOST") or "").strip() or None
    port_raw = (os.getenv("POSTGRES_PORT") or "").strip() or "5432"
    try:
        port = int(port_raw)
    except ValueError:
        port = 5432

    backend = (os.getenv("DOCSTORE_BACKEND") or "").strip().lower()
    if backend not in ("postgres", "local"):
        # Default: Postgres when a connection is configured; otherwise local files.
        backend = "postgres" if (dsn or host) else "local"

    return DocstoreConfig(
        backend=backend,
        local_dir=(os.getenv("DOCSTORE_LOCAL_DIR") or "").strip() or "./data/documents",
        db_auto_migrate=_env_bool("DB_AUTO_MIGRATE", False),
        postgres_dsn=dsn,
        postgres_host=host,
        postgres_port=port,
        postgres_db=(os.getenv("POSTGRES_DB") or "").strip() or None,
        postgres_user=(os.getenv("POSTGRES_USER") or "").strip() or None,
        postgres_password=(os.getenv("POSTGRES_PASSWORD") or "").strip() or None,
        projects_ref=_env_ref("FOLIO_DOC_PROJECTS", "portfolio/projects"),
        certifications_ref=_env_ref("FOLIO_DOC_CERTIFICATIONS", "portfolio/certifications"),
        timeline_ref=_env_ref("FOLIO_DOC_TIMELINE", "timeline/events"),
        skills_ref=_env_ref("FOLIO_DOC_SKILLS", "skills/categories"),
        key_skills_ref=_env_ref("FOLIO_DOC_KEY_SKILLS", "skills/key-skills"),
    )


def build_postgres_dsn(cfg: DocstoreConfig) -> Optional[str]:
    if cfg.postgres_dsn:
        return cfg.postgres_dsn
    if not (cfg.postgres_host and cfg.postgres_db and cfg.postgres_user and cfg.postgres_password):
        return None
    # psycopg's conninfo builder quotes/escapes special characters in passwords.
    from psycopg.conninfo import make_conninfo

    return make_conninfo(
        host=cfg.postgres_host,
        port=cfg.postgres_port,
        dbname=cfg.postgres_db,
        user=cfg.postgres_user,
        password=cfg.postgres_password,
    )
