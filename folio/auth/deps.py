from __future__ import annotations

from typing import Optional, Protocol

from fastapi import Request

from folio.auth.config import load_auth_config
from folio.auth.models import AuthUser, SessionState
from folio.auth.session import decode_session, session_cookie_name


class SessionProvider(Protocol):
    """Resolves the session state of a request for the auth gate."""

    def current(self, request: Request) -> SessionState: ...


class CookieSessionProvider:
    """Signed-cookie sessions resolve synchronously, so `loading` is always False."""

    def current(self, request: Request) -> SessionState:
        return SessionState(user=authenticate_request(request), loading=False)


def authenticate_request(request: Request) -> Optional[AuthUser]:
    """
    Authenticate a request and return an AuthUser if present/valid.

    Fails closed: a missing session secret means no request is authenticated.
    """
    cfg = load_auth_config()
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))
