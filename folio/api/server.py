"""
Portfolio console API server.

Serves the owner's dashboard: CRUD over the portfolio collections, blob uploads, dashboard
stats and the activity feed. Every route except the explicitly public ones sits behind the
auth gate middleware.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field, ValidationError

from folio.auth.deps import CookieSessionProvider
from folio.auth.gate import gate_request, protected, require_user
from folio.auth.models import AuthUser
from folio.core.errors import DuplicateKey, FolioError, NotFound, RemoteError, ValidationFailed
from folio.records import get_registry
from folio.records.store import CollectionStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Portfolio console")
app.state.session_provider = CookieSessionProvider()


def _is_public_path(path: str) -> bool:
    if path == "/healthz":
        return True
    # Login / password reset must be reachable without a session.
    if path in ("/api/auth/login/local", "/api/auth/password-reset", "/api/auth/password-reset/confirm"):
        return True
    # Allow logout even if the cookie is already missing/invalid.
    if path == "/api/auth/logout":
        return True
    # Uploaded assets are public (they are embedded in the portfolio site).
    if path.startswith("/blobs/"):
        return True
    return False


def _get_db_connection():
    """Get a Postgres connection, or return None if not configured."""
    try:
        import psycopg  # type: ignore[import-not-found]

        from folio.docstore.config import build_postgres_dsn, load_docstore_config

        dsn = build_postgres_dsn(load_docstore_config())
        if not dsn:
            return None
        return psycopg.connect(dsn)
    except Exception as e:
        logger.debug("Failed to connect to Postgres: %s", str(e))
        return None


@app.on_event("startup")
def _startup_maybe_migrate_db() -> None:
    """
    Optional: auto-apply DB migrations when DB_AUTO_MIGRATE=1.

    This should never prevent the server from starting; failures are logged.
    """
    try:
        from folio.docstore.migrate import maybe_auto_migrate

        did_attempt, msg = maybe_auto_migrate()
        if did_attempt:
            logger.info("DB migrations: %s", msg)
    except Exception as e:
        logger.warning("DB migrations: startup auto-migrate failed: %s", str(e))

    try:
        from folio.docstore.config import load_docstore_config

        cfg = load_docstore_config()
        # Avoid logging secrets; host/db/user are fine.
        logger.info(
            "Docstore config: backend=%s local_dir=%s postgres_host=%s postgres_db=%s",
            cfg.backend,
            cfg.local_dir,
            cfg.postgres_host,
            cfg.postgres_db,
        )
    except Exception as e:
        logger.info("Docstore config: unavailable (%s)", str(e))


@app.on_event("startup")
def _startup_initialize_admin_user() -> None:
    """Create the owner account on first startup if configured."""
    try:
        from folio.auth.config import load_auth_config
        from folio.auth.local import initialize_admin_user

        cfg = load_auth_config()
        if cfg.admin_initial_username and cfg.admin_initial_password:
            conn = _get_db_connection()
            if conn:
                try:
                    initialize_admin_user(
                        conn, cfg.admin_initial_username, cfg.admin_initial_password, cfg.admin_initial_email
                    )
                    logger.info("Admin user initialization check completed")
                finally:
                    conn.close()
            else:
                logger.warning("Cannot initialize admin user: database not configured")
    except Exception as e:
        logger.warning("Admin user initialization failed: %s", str(e))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests and enforce the auth gate."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        path = request.url.path or ""

        if request.method != "OPTIONS" and not _is_public_path(path):
            # Fail closed: anything not explicitly public requires auth.
            decision, denied = gate_request(request)
            if denied is not None:
                logger.debug("%s %s - gate %s", request.method, path, decision.state.value)
                return denied

        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


# ---- Authentication ----


class LoginRequest(BaseModel):
    login: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    password: str = ""


class PasswordResetRequest(BaseModel):
    email: str = ""


class PasswordResetConfirm(BaseModel):
    token: str = ""
    password: str = ""


@app.post("/api/auth/login/local")
def auth_login_local(credentials: LoginRequest) -> JSONResponse:
    """
    Email-or-username / password sign-in.
    Only failed attempts count against the rate limit.
    """
    from folio.auth.config import load_auth_config
    from folio.auth.local import authenticate_local
    from folio.auth.rate_limit import get_rate_limiter
    from folio.auth.session import encode_session, session_cookie_kwargs

    cfg = load_auth_config()
    login = (credentials.login or credentials.email or credentials.username or "").strip()
    password = credentials.password or ""
    if not login or not password:
        raise HTTPException(status_code=400, detail="Missing email or password")

    rate_limiter = get_rate_limiter()
    identifier = login.lower()
    allowed, _remaining = rate_limiter.check(identifier)
    if not allowed:
        raise HTTPException(status_code=429, detail="Too many failed login attempts. Please try again later.")

    conn = _get_db_connection()
    if not conn:
        raise HTTPException(status_code=500, detail="Database not configured")

    try:
        user = authenticate_local(conn, login, password)
        if not user:
            remaining = rate_limiter.record_failure(identifier)
            raise HTTPException(status_code=401, detail=f"Invalid credentials ({remaining} attempts remaining)")

        rate_limiter.reset(identifier)

        session_value = encode_session(cfg, user)
        if not session_value:
            raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")

        resp = JSONResponse(content={"ok": True, "user": user.public()})
        resp.headers["Cache-Control"] = "no-store"
        resp.set_cookie(**session_cookie_kwargs(cfg, session_value))
        return resp
    finally:
        conn.close()


@app.post("/api/auth/logout")
async def auth_logout() -> JSONResponse:
    from folio.auth.config import load_auth_config
    from folio.auth.session import session_cookie_kwargs

    cfg = load_auth_config()
    resp = JSONResponse(content={"ok": True})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, None))
    return resp


@app.get("/api/auth/me")
async def auth_me(user: AuthUser = Depends(require_user)) -> Dict[str, Any]:
    return {"ok": True, "user": user.public()}


@app.post("/api/auth/password-reset")
def auth_password_reset(req: PasswordResetRequest) -> Dict[str, Any]:
    """
    Send a password-reset link. Always answers ok so the endpoint can't be used to probe accounts.
    """
    from folio.auth.config import load_auth_config
    from folio.auth.local import get_local_user
    from folio.auth.reset import LogResetNotifier, issue_reset_token, reset_link

    email = (req.email or "").strip().lower()
    if not email:
        raise HTTPException(status_code=400, detail="Please enter your email address")

    cfg = load_auth_config()
    conn = _get_db_connection()
    if not conn:
        raise HTTPException(status_code=500, detail="Database not configured")
    try:
        user = get_local_user(conn, email)
    finally:
        conn.close()

    if user is not None and user.is_active:
        token = issue_reset_token(cfg, user)
        if not token:
            raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")
        notifier = getattr(app.state, "reset_notifier", None) or LogResetNotifier()
        notifier.send_reset(user.email, reset_link(cfg, token))
    return {"ok": True}


@app.post("/api/auth/password-reset/confirm")
def auth_password_reset_confirm(req: PasswordResetConfirm) -> Dict[str, Any]:
    from folio.auth.config import load_auth_config
    from folio.auth.local import get_local_user_by_id, set_password
    from folio.auth.reset import read_reset_token, token_matches_user, validate_new_password

    cfg = load_auth_config()
    problem = validate_new_password(req.password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)
    payload = read_reset_token(cfg, req.token)
    if payload is None:
        raise HTTPException(status_code=400, detail="Invalid or expired reset link")

    conn = _get_db_connection()
    if not conn:
        raise HTTPException(status_code=500, detail="Database not configured")
    try:
        user = get_local_user_by_id(conn, int(payload["uid"]))
        if user is None or not user.is_active or not token_matches_user(payload, user):
            raise HTTPException(status_code=400, detail="Invalid or expired reset link")
        set_password(conn, user.id, req.password)
    finally:
        conn.close()
    logger.info("Password reset completed for user id=%s", payload.get("uid"))
    return {"ok": True}


# ---- Collections ----


def _raise_http(e: FolioError) -> NoReturn:
    if isinstance(e, DuplicateKey):
        raise HTTPException(status_code=409, detail=str(e)) from e
    if isinstance(e, ValidationFailed):
        raise HTTPException(status_code=400, detail=str(e)) from e
    if isinstance(e, NotFound):
        raise HTTPException(status_code=404, detail=str(e)) from e
    if isinstance(e, RemoteError):
        raise HTTPException(status_code=502, detail=str(e)) from e
    raise HTTPException(status_code=500, detail=str(e)) from e


def _dump(records: List[Any]) -> List[Dict[str, Any]]:
    return [r.model_dump(by_alias=True, exclude_none=True) for r in records]


def _collection(name: str) -> CollectionStore:
    store = get_registry().flat_collections().get(name)
    if store is None:
        raise HTTPException(status_code=404, detail=f"Unknown collection: {name}")
    return store


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


class CategoryRequest(BaseModel):
    name: str = ""


class SkillRequest(BaseModel):
    name: str = ""
    level: Optional[int] = None


@app.get("/api/dashboard/stats")
@protected
def dashboard_stats(request: Request) -> Dict[str, Any]:
    reg = get_registry()
    try:
        return {
            "totalProjects": len(reg.projects.load()),
            "totalSkills": sum(len(c.skills) for c in reg.skills.load()),
            "totalCertifications": len(reg.certifications.load()),
        }
    except FolioError as e:
        _raise_http(e)


@app.get("/api/v1/activity")
def activity_feed() -> Dict[str, Any]:
    from folio.feed.aggregator import collect_sources, default_sources, merge_feed
    from folio.feed.config import load_feed_config
    from folio.providers.github_provider import get_github_provider

    cfg = load_feed_config()
    groups, failed = collect_sources(default_sources(get_registry(), get_github_provider(), cfg))
    items = merge_feed(groups, limit=cfg.limit)
    return {"items": [i.model_dump(exclude_none=True) for i in items], "failedSources": failed}


@app.get("/api/v1/skills")
def list_skill_categories() -> Dict[str, Any]:
    store = get_registry().skills
    try:
        categories = store.load()
    except FolioError as e:
        _raise_http(e)
    return {"items": _dump(categories), "totalSkills": store.total_skills()}


@app.post("/api/v1/skills/categories")
def add_skill_category(req: CategoryRequest) -> Dict[str, Any]:
    store = get_registry().skills
    try:
        store.ensure_loaded()
        category = store.add_category(req.name)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "item": category.model_dump(by_alias=True, exclude_none=True)}


@app.patch("/api/v1/skills/categories/{name}")
def rename_skill_category(name: str, req: CategoryRequest) -> Dict[str, Any]:
    store = get_registry().skills
    try:
        store.ensure_loaded()
        category = store.rename_category(name, req.name)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "item": category.model_dump(by_alias=True, exclude_none=True)}


@app.delete("/api/v1/skills/categories/{name}")
def remove_skill_category(name: str) -> Dict[str, Any]:
    store = get_registry().skills
    try:
        store.ensure_loaded()
        removed = store.remove_category(name)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "removed": removed}


@app.post("/api/v1/skills/categories/{name}/skills")
def add_skill(name: str, req: SkillRequest) -> Dict[str, Any]:
    store = get_registry().skills
    try:
        store.ensure_loaded()
        skill = store.add_skill(name, req.model_dump(exclude_none=True))
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "item": skill.model_dump(by_alias=True, exclude_none=True)}


@app.patch("/api/v1/skills/categories/{name}/skills/{skill}")
def update_skill(name: str, skill: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    store = get_registry().skills
    try:
        store.ensure_loaded()
        updated = store.update_skill(name, skill, patch)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "item": updated.model_dump(by_alias=True, exclude_none=True)}


@app.delete("/api/v1/skills/categories/{name}/skills/{skill}")
def remove_skill(name: str, skill: str) -> Dict[str, Any]:
    store = get_registry().skills
    try:
        store.ensure_loaded()
        removed = store.remove_skill(name, skill)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "removed": removed}


@app.get("/api/v1/{collection}")
def list_records(collection: str) -> Dict[str, Any]:
    store = _collection(collection)
    try:
        return {"items": _dump(store.load())}
    except FolioError as e:
        _raise_http(e)


@app.post("/api/v1/{collection}")
def add_record(collection: str, body: Dict[str, Any]) -> Dict[str, Any]:
    store = _collection(collection)
    try:
        candidate = store.model.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid {collection} entry: {e.errors()[0].get('msg')}") from e
    try:
        store.ensure_loaded()
        record = store.add(candidate)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "item": record.model_dump(by_alias=True, exclude_none=True)}


@app.post("/api/v1/{collection}/bulk-delete")
def bulk_delete_records(collection: str, req: BulkDeleteRequest) -> Dict[str, Any]:
    store = _collection(collection)
    try:
        store.ensure_loaded()
        removed = store.remove_many(req.ids)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "removed": removed}


@app.patch("/api/v1/{collection}/{key}")
def update_record(collection: str, key: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    store = _collection(collection)
    try:
        store.ensure_loaded()
        record = store.update(key, patch)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "item": record.model_dump(by_alias=True, exclude_none=True)}


@app.delete("/api/v1/{collection}/{key}")
def delete_record(collection: str, key: str) -> Dict[str, Any]:
    store = _collection(collection)
    try:
        store.ensure_loaded()
        removed = store.remove(key)
    except FolioError as e:
        _raise_http(e)
    return {"ok": True, "removed": removed}


# ---- Blob storage ----


def _blob_error(status: int, error: str, details: Optional[str] = None) -> JSONResponse:
    content: Dict[str, Any] = {"error": error}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status, content=content)


@app.post("/api/blob")
async def upload_blob(request: Request) -> JSONResponse:
    from folio.storage import get_blob_storage
    from folio.storage.config import load_blob_config

    max_bytes = load_blob_config().max_upload_bytes

    # Reject obviously oversized bodies before parsing the multipart payload.
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes + 64 * 1024:
        logger.error("File too large: content-length=%s", declared)
        return _blob_error(400, "File too large")

    form = await request.form()
    file = form.get("file")
    if file is None or isinstance(file, str):
        logger.error("No file provided in request")
        return _blob_error(400, "No file provided")

    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        logger.error("File too large: %s", file.filename)
        return _blob_error(400, "File too large")

    custom_name = str(form.get("customFileName") or "").strip()
    add_suffix = str(form.get("addSuffix") or "").strip().lower() == "true"
    file_name = custom_name or (file.filename or "")
    logger.info("Attempting to upload file: %s", file_name)

    try:
        result = get_blob_storage().upload(
            data,
            file_name,
            content_type=file.content_type or "application/octet-stream",
            access="public",
            add_random_suffix=add_suffix,
        )
    except ValueError as e:
        return _blob_error(400, "Upload failed", str(e))
    except Exception as e:
        logger.exception("Upload error")
        return _blob_error(500, "Upload failed", str(e))

    logger.info("Upload successful: %s", result.url)
    return JSONResponse(content={"url": result.url, "pathname": result.pathname})


@app.get("/api/blob")
def list_blobs() -> JSONResponse:
    from folio.storage import get_blob_storage

    try:
        files = get_blob_storage().list()
    except Exception as e:
        logger.warning("Failed to list files: %s", e)
        return _blob_error(500, "Failed to list files")
    return JSONResponse(content={"files": [f.model_dump(by_alias=True) for f in files]})


class BlobDeleteRequest(BaseModel):
    url: str = ""


@app.delete("/api/blob")
def delete_blob(req: BlobDeleteRequest) -> JSONResponse:
    from folio.storage import get_blob_storage

    url = (req.url or "").strip()
    if not url:
        logger.error("No URL provided for deletion")
        return _blob_error(400, "No URL provided")

    logger.info("Attempting to delete: %s", url)
    try:
        get_blob_storage().delete(url)
    except Exception as e:
        logger.warning("Delete error: %s", e)
        return _blob_error(500, "Delete failed", str(e))
    return JSONResponse(content={"success": True})


@app.get("/blobs/{pathname:path}")
def serve_local_blob(pathname: str) -> FileResponse:
    """Serve uploads from the local backend (development only; S3 URLs point at the bucket)."""
    from folio.storage import get_blob_storage
    from folio.storage.local_store import LocalBlobStorage

    storage = get_blob_storage()
    if not isinstance(storage, LocalBlobStorage):
        raise HTTPException(status_code=404, detail="Not found")
    try:
        path = storage.path_for(pathname)
    except ValueError:
        raise HTTPException(status_code=404, detail="Not found")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(path)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting portfolio console on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
