from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class AuthConfig:
    # Session configuration
    public_base_url: Optional[str]  # Used to build password-reset links
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool

    # Gate behavior
    login_path: str  # Where unauthenticated page requests are redirected

    # Local auth configuration
    admin_initial_username: str
    admin_initial_password: Optional[str]  # Initial admin password (required on first startup)
    admin_initial_email: Optional[str]

    # Password reset
    reset_ttl_seconds: int

    @property
    def session_enabled(self) -> bool:
        return bool(self.session_secret)


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    try:
        v = int(float(raw)) if raw else default
    except ValueError:
        v = default
    return max(v, minimum)


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """Load authentication configuration from environment variables."""
    public_base_url = (os.getenv("AUTH_PUBLIC_BASE_URL", "") or "").strip().rstrip("/") or None
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = (public_base_url or "").startswith("https://")

    login_path = (os.getenv("AUTH_LOGIN_PATH", "") or "").strip() or "/login"
    if not login_path.startswith("/") or login_path.startswith("//"):
        login_path = "/login"

    return AuthConfig(
        public_base_url=public_base_url,
        session_secret=(os.getenv("AUTH_SESSION_SECRET", "") or "").strip() or None,
        session_ttl_seconds=_env_int("AUTH_SESSION_TTL_SECONDS", 43200, 60),  # 12h default
        cookie_secure=cookie_secure,
        login_path=login_path,
        admin_initial_username=(os.getenv("ADMIN_INITIAL_USERNAME", "") or "admin").strip(),
        admin_initial_password=(os.getenv("ADMIN_INITIAL_PASSWORD", "") or "").strip() or None,
        admin_initial_email=(os.getenv("ADMIN_INITIAL_EMAIL", "") or "").strip().lower() or None,
        reset_ttl_seconds=_env_int("AUTH_RESET_TTL_SECONDS", 3600, 300),
    )
