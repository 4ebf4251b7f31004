"""
Password reset: signed, time-limited tokens.

A token embeds a fingerprint of the user's current password hash, so it stops working as
soon as the password changes (single use in practice).
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional, Protocol
from urllib.parse import urlencode

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from folio.auth.config import AuthConfig
from folio.auth.models import LocalUser

logger = logging.getLogger(__name__)

RESET_SALT = "folio-password-reset-v1"
MIN_PASSWORD_LENGTH = 8


class ResetNotifier(Protocol):
    def send_reset(self, email: str, link: str) -> None: ...


class LogResetNotifier:
    """Development notifier: the link only goes to debug logs."""

    def send_reset(self, email: str, link: str) -> None:
        logger.info("Password reset requested for %s", email)
        logger.debug("Password reset link for %s: %s", email, link)


def _fingerprint(password_hash: str) -> str:
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=RESET_SALT)


def issue_reset_token(cfg: AuthConfig, user: LocalUser) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    return s.dumps({"uid": user.id, "fp": _fingerprint(user.password_hash)})


def read_reset_token(cfg: AuthConfig, token: str) -> Optional[dict]:
    """Return the token payload if the signature and age are valid."""
    s = _serializer(cfg)
    if s is None or not token:
        return None
    try:
        data = s.loads(token, max_age=cfg.reset_ttl_seconds)
    except (BadSignature, BadTimeSignature):
        return None
    if not isinstance(data, dict) or "uid" not in data or "fp" not in data:
        return None
    return data


def token_matches_user(payload: dict, user: LocalUser) -> bool:
    return payload.get("uid") == user.id and payload.get("fp") == _fingerprint(user.password_hash)


def reset_link(cfg: AuthConfig, token: str) -> str:
    base = cfg.public_base_url or ""
    return f"{base}{cfg.login_path}/reset?{urlencode({'token': token})}"


def validate_new_password(password: str) -> Optional[str]:
    """Return an error message, or None when the password is acceptable."""
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    return None
