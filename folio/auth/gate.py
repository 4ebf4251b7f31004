"""
Auth gate: decides whether a request may reach a protected handler.

States: PENDING (session still resolving) -> AUTHORIZED | UNAUTHORIZED.
- PENDING: neutral placeholder, never a redirect.
- UNAUTHORIZED: page requests are redirected to the login route; API requests get 401.
- AUTHORIZED: the handler runs unchanged.

The gate keeps no state of its own; the session state is passed in explicitly.
"""

from __future__ import annotations

import enum
import functools
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple
from urllib.parse import urlencode

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from folio.auth.config import load_auth_config
from folio.auth.models import AuthUser, SessionState


class GateState(str, enum.Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class GateDecision:
    state: GateState
    user: Optional[AuthUser] = None
    redirect_to: Optional[str] = None


def sanitize_next_path(next_path: str | None) -> str:
    """Prevent open-redirects: allow only relative paths like `/projects`."""
    p = (next_path or "").strip()
    if not p or not p.startswith("/") or p.startswith("//"):
        return "/"
    p = p.replace("\r", "").replace("\n", "")
    return p or "/"


def login_redirect_target(login_path: str, next_path: str | None) -> str:
    nxt = sanitize_next_path(next_path)
    if nxt == "/" or nxt == login_path:
        return login_path
    return f"{login_path}?{urlencode({'next': nxt})}"


def evaluate_gate(state: SessionState, *, login_path: str = "/login", next_path: str | None = None) -> GateDecision:
    if state.loading:
        return GateDecision(state=GateState.PENDING)
    if state.user is None:
        return GateDecision(state=GateState.UNAUTHORIZED, redirect_to=login_redirect_target(login_path, next_path))
    return GateDecision(state=GateState.AUTHORIZED, user=state.user)


def is_page_request(request: Request) -> bool:
    """Browser navigation (HTML) rather than an API call."""
    path = request.url.path or ""
    if path.startswith("/api/"):
        return False
    accept = (request.headers.get("accept") or "").lower()
    return "text/html" in accept


def denial_response(decision: GateDecision, request: Request) -> Optional[Response]:
    """Response for a non-authorized decision, or None when the request may proceed."""
    if decision.state == GateState.AUTHORIZED:
        return None
    if decision.state == GateState.PENDING:
        return JSONResponse(status_code=503, content={"detail": "Loading"}, headers={"Retry-After": "1"})
    if is_page_request(request) and decision.redirect_to:
        resp = RedirectResponse(url=decision.redirect_to, status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        return resp
    # No `WWW-Authenticate`: browsers would show a basic-auth modal over the login page.
    return JSONResponse(status_code=401, content={"detail": "Unauthorized"})


def require_user(request: Request) -> AuthUser:
    """FastAPI dependency for handlers that need the authenticated user."""
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def gate_request(request: Request) -> Tuple[GateDecision, Optional[Response]]:
    """
    Run the gate for `request` against `app.state.session_provider`.

    On success the user is stored on `request.state.user`; otherwise the second element is the
    response to send instead of the handler's.
    """
    provider = request.app.state.session_provider
    decision = evaluate_gate(
        provider.current(request), login_path=load_auth_config().login_path, next_path=request.url.path
    )
    if decision.user is not None:
        request.state.user = decision.user
    return decision, denial_response(decision, request)


def _request_arg(args: Tuple[Any, ...], kwargs: dict) -> Request:
    request = kwargs.get("request")
    if request is None:
        request = next((a for a in args if isinstance(a, Request)), None)
    if request is None:
        raise TypeError("protected views must take a `request: Request` argument")
    return request


def protected(view: Callable[..., Any]) -> Callable[..., Any]:
    """Gate a plain view that takes a `request` argument. Works for sync and async views."""
    if inspect.iscoroutinefunction(view):

        @functools.wraps(view)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            _, denied = gate_request(_request_arg(args, kwargs))
            if denied is not None:
                return denied
            return await view(*args, **kwargs)

        return async_wrapper

    @functools.wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _, denied = gate_request(_request_arg(args, kwargs))
        if denied is not None:
            return denied
        return view(*args, **kwargs)

    return wrapper
