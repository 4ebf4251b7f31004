"""
Owner session cookie.

The cookie carries a signed, timestamped identity payload. There is no server-side session
table, so logging out only expires the cookie.
"""

from __future__ import annotations

from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from folio.auth.config import AuthConfig
from folio.auth.models import AuthUser

SESSION_SALT = "folio-console-session-v1"

# Short payload keys keep the cookie small.
_PAYLOAD_KEYS = {"p": "provider", "e": "email", "n": "name", "u": "username"}


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-folio_session" if cfg.cookie_secure else "folio_session"


def _signer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_enabled:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, user: AuthUser) -> Optional[str]:
    """Signed cookie value for `user`, or None when no session secret is configured."""
    signer = _signer(cfg)
    if signer is None:
        return None
    payload = {short: getattr(user, attr) for short, attr in _PAYLOAD_KEYS.items() if getattr(user, attr)}
    return signer.dumps(payload)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[AuthUser]:
    if not value:
        return None
    signer = _signer(cfg)
    if signer is None:
        return None
    try:
        payload = signer.loads(value, max_age=cfg.session_ttl_seconds)
    except BadSignature:
        # Covers expired cookies too (SignatureExpired is a BadSignature).
        return None
    if not isinstance(payload, dict):
        return None
    fields = {attr: str(payload[short]).strip() for short, attr in _PAYLOAD_KEYS.items() if payload.get(short)}
    fields["provider"] = fields.get("provider") or "local"
    return AuthUser(**fields)


def session_cookie_kwargs(cfg: AuthConfig, value: Optional[str]) -> dict:
    """`Response.set_cookie` arguments; `value=None` expires the cookie."""
    return {
        "key": session_cookie_name(cfg),
        "value": value or "",
        "max_age": cfg.session_ttl_seconds if value else 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
