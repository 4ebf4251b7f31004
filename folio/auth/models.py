from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuthUser:
    """The signed-in portfolio owner, as carried in the session cookie."""

    provider: str = "local"
    email: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None

    def public(self) -> Dict[str, Any]:
        """Shape returned by the auth endpoints."""
        return {"provider": self.provider, "email": self.email, "name": self.name, "username": self.username}


@dataclass
class LocalUser:
    """Console account row from `local_users`."""

    id: int
    email: str
    username: str
    password_hash: str
    name: Optional[str]
    created_at: datetime
    last_login_at: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    is_active: bool = True

    def to_auth_user(self) -> AuthUser:
        return AuthUser(provider="local", email=self.email, name=self.name, username=self.username)


@dataclass(frozen=True)
class SessionState:
    """What the auth gate sees: the resolved user (if any) and whether resolution is pending."""

    user: Optional[AuthUser] = None
    loading: bool = False
