"""
Pytest config.

Local imports like `import folio` rely on the repo root being on sys.path. When invoking a
global `pytest` entrypoint that doesn't happen reliably during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

TEST_SECRET = "test-secret-key-for-testing-purposes-only"


@pytest.fixture(autouse=True)
def _isolated_process_state(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """
    Every test gets local backends under tmp_path and fresh process-wide singletons.

    Nothing here touches Postgres, S3 or GitHub; tests that need them patch them explicitly.
    """
    from folio.auth.config import load_auth_config
    from folio.auth.rate_limit import reset_rate_limiter
    from folio.docstore import reset_document_store
    from folio.docstore.config import load_docstore_config
    from folio.feed.config import load_feed_config
    from folio.providers.github_provider import set_github_provider
    from folio.records import set_registry
    from folio.storage import set_blob_storage
    from folio.storage.config import load_blob_config

    for name in ("POSTGRES_DSN", "POSTGRES_HOST", "GITHUB_REPO", "GITHUB_TOKEN", "ADMIN_INITIAL_PASSWORD", "DB_AUTO_MIGRATE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DOCSTORE_BACKEND", "local")
    monkeypatch.setenv("DOCSTORE_LOCAL_DIR", str(tmp_path / "documents"))
    monkeypatch.setenv("BLOB_BACKEND", "local")
    monkeypatch.setenv("BLOB_LOCAL_DIR", str(tmp_path / "blobs"))
    monkeypatch.setenv("AUTH_SESSION_SECRET", TEST_SECRET)

    def _reset() -> None:
        for loader in (load_auth_config, load_docstore_config, load_blob_config, load_feed_config):
            loader.cache_clear()
        reset_rate_limiter()
        reset_document_store()
        set_registry(None)
        set_blob_storage(None)
        set_github_provider(None)

    _reset()
    yield
    _reset()


@pytest.fixture
def authed_client():
    """TestClient carrying a valid session cookie."""
    from fastapi.testclient import TestClient

    import folio.api.server as srv
    from folio.auth.config import load_auth_config
    from folio.auth.models import AuthUser
    from folio.auth.session import encode_session, session_cookie_name

    cfg = load_auth_config()
    c = TestClient(srv.app)
    c.cookies.set(session_cookie_name(cfg), encode_session(cfg, AuthUser(provider="local", username="owner")))
    return c
