from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

import folio.api.server as srv
from folio.auth.config import load_auth_config
from folio.auth.models import AuthUser, LocalUser
from folio.auth.session import session_cookie_name


def _local_user(**overrides) -> LocalUser:
    fields = dict(
        id=1,
        email="owner@example.com",
        username="owner",
        password_hash="$2b$12$hash",
        name="Owner",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        last_login_at=None,
        is_active=True,
    )
    fields.update(overrides)
    return LocalUser(**fields)


def test_healthz_is_public() -> None:
    """Health check endpoint should be accessible without authentication."""
    c = TestClient(srv.app)
    r = c.get("/healthz")
    assert r.status_code == 200


def test_auth_me_requires_auth() -> None:
    c = TestClient(srv.app)
    r = c.get("/api/auth/me")
    assert r.status_code == 401


def test_auth_me_returns_session_user(authed_client) -> None:
    r = authed_client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json()["user"]["username"] == "owner"


def test_login_sets_session_cookie(monkeypatch) -> None:
    conn = MagicMock()
    monkeypatch.setattr(srv, "_get_db_connection", lambda: conn)
    user = AuthUser(provider="local", email="owner@example.com", username="owner")

    with patch("folio.auth.local.authenticate_local", return_value=user) as auth:
        c = TestClient(srv.app)
        r = c.post("/api/auth/login/local", json={"email": "owner@example.com", "password": "correct-horse"})

    assert r.status_code == 200
    assert r.json()["user"]["email"] == "owner@example.com"
    auth.assert_called_once_with(conn, "owner@example.com", "correct-horse")
    assert session_cookie_name(load_auth_config()) in r.cookies
    conn.close.assert_called_once()

    # The cookie now authorizes protected routes.
    assert c.get("/api/auth/me").status_code == 200


def test_login_rejects_missing_fields() -> None:
    c = TestClient(srv.app)
    r = c.post("/api/auth/login/local", json={"email": "", "password": ""})
    assert r.status_code == 400


def test_failed_logins_are_rate_limited(monkeypatch) -> None:
    monkeypatch.setattr(srv, "_get_db_connection", lambda: MagicMock())
    with patch("folio.auth.local.authenticate_local", return_value=None):
        c = TestClient(srv.app)
        codes = [
            c.post("/api/auth/login/local", json={"username": "owner", "password": "wrong"}).status_code
            for _ in range(6)
        ]
    assert codes == [401, 401, 401, 401, 401, 429]


def test_logout_clears_cookie(authed_client) -> None:
    r = authed_client.post("/api/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    set_cookie = r.headers.get("set-cookie", "")
    assert session_cookie_name(load_auth_config()) in set_cookie
    assert "Max-Age=0" in set_cookie


def test_password_reset_request_does_not_reveal_accounts(monkeypatch) -> None:
    monkeypatch.setattr(srv, "_get_db_connection", lambda: MagicMock())
    notifier = MagicMock()
    monkeypatch.setattr(srv.app.state, "reset_notifier", notifier, raising=False)
    c = TestClient(srv.app)

    with patch("folio.auth.local.get_local_user", return_value=None):
        r_unknown = c.post("/api/auth/password-reset", json={"email": "nobody@example.com"})
    with patch("folio.auth.local.get_local_user", return_value=_local_user()):
        r_known = c.post("/api/auth/password-reset", json={"email": "owner@example.com"})

    assert r_unknown.status_code == r_known.status_code == 200
    assert r_unknown.json() == r_known.json() == {"ok": True}
    notifier.send_reset.assert_called_once()
    email, link = notifier.send_reset.call_args[0]
    assert email == "owner@example.com"
    assert "/login/reset?token=" in link


def test_password_reset_confirm_sets_new_password(monkeypatch) -> None:
    from folio.auth.reset import issue_reset_token

    user = _local_user()
    token = issue_reset_token(load_auth_config(), user)
    monkeypatch.setattr(srv, "_get_db_connection", lambda: MagicMock())
    c = TestClient(srv.app)

    with patch("folio.auth.local.get_local_user_by_id", return_value=user), patch(
        "folio.auth.local.set_password"
    ) as set_pw:
        r = c.post("/api/auth/password-reset/confirm", json={"token": token, "password": "brand-new-pass"})

    assert r.status_code == 200
    set_pw.assert_called_once()
    assert set_pw.call_args[0][1:] == (1, "brand-new-pass")


def test_password_reset_confirm_rejects_bad_token() -> None:
    c = TestClient(srv.app)
    r = c.post("/api/auth/password-reset/confirm", json={"token": "bogus", "password": "brand-new-pass"})
    assert r.status_code == 400
