"""
Read-only GitHub client feeding commit history into the dashboard activity feed.

Credentials, in order of preference:
- GITHUB_TOKEN: a personal access token
- GITHUB_APP_ID / GITHUB_APP_PRIVATE_KEY / GITHUB_APP_INSTALLATION_ID: a GitHub App
  installation, exchanged for short-lived installation tokens
- nothing: anonymous calls (public repos only, low rate limit)
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

import jwt
import requests

GITHUB_API = "https://api.github.com"
API_VERSION = "2022-11-28"
REQUEST_TIMEOUT = 10
MESSAGE_MAX_CHARS = 300

# Installation tokens are swapped this long before GitHub expires them.
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


class GitHubProvider(Protocol):
    def get_recent_commits(
        self,
        repo: str,
        since: datetime,
        until: datetime,
        branch: str = "main",
        limit: int = 30,
    ) -> List[Dict[str, Any]]:
        """
        Commits on `branch` of `repo` ("owner/name") inside [since, until], newest first.

        Each entry: {"sha": 7-char sha, "message": str, "author": {"name", "date"}, "html_url"}.
        A failed call yields `[{"error": ..., "message": ...}]` instead of raising.
        """
        ...


@dataclass
class _InstallationToken:
    value: str
    expires_at: datetime

    def usable(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at - TOKEN_REFRESH_MARGIN


def _parse_github_time(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def _commit_summary(raw: Dict[str, Any]) -> Dict[str, Any]:
    detail = raw.get("commit") or {}
    author = detail.get("author") or {}
    return {
        "sha": str(raw.get("sha") or "")[:7],
        "message": str(detail.get("message") or "")[:MESSAGE_MAX_CHARS],
        "author": {"name": author.get("name", "Unknown"), "date": author.get("date", "")},
        "html_url": raw.get("html_url", ""),
    }


class DefaultGitHubProvider:
    def __init__(self) -> None:
        self.token = (os.getenv("GITHUB_TOKEN") or "").strip()
        self.app_id = (os.getenv("GITHUB_APP_ID") or "").strip()
        # PEM keys usually arrive through env with literal "\n".
        self.private_key = (os.getenv("GITHUB_APP_PRIVATE_KEY") or "").replace("\\n", "\n")
        self.installation_id = (os.getenv("GITHUB_APP_INSTALLATION_ID") or "").strip()
        self._installation: Optional[_InstallationToken] = None

    @property
    def app_configured(self) -> bool:
        return bool(self.app_id and self.private_key and self.installation_id)

    def _app_jwt(self) -> str:
        if not (self.app_id and self.private_key):
            raise ValueError("GITHUB_APP_ID and GITHUB_APP_PRIVATE_KEY required")
        issued = int(time.time()) - 60  # tolerate clock skew
        claims = {"iss": self.app_id, "iat": issued, "exp": issued + 600}
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    def _installation_token(self) -> str:
        if self._installation is not None and self._installation.usable():
            return self._installation.value
        if not self.installation_id:
            raise ValueError("GITHUB_APP_INSTALLATION_ID required")

        resp = requests.post(
            f"{GITHUB_API}/app/installations/{self.installation_id}/access_tokens",
            headers=self._base_headers(f"Bearer {self._app_jwt()}"),
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        body = resp.json()
        self._installation = _InstallationToken(value=body["token"], expires_at=_parse_github_time(body["expires_at"]))
        return self._installation.value

    @staticmethod
    def _base_headers(authorization: Optional[str] = None) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": API_VERSION}
        if authorization:
            headers["Authorization"] = authorization
        return headers

    def _authorization(self) -> Optional[str]:
        if self.token:
            return f"Bearer {self.token}"
        if self.app_configured:
            return f"Bearer {self._installation_token()}"
        return None

    def _get(self, path: str, params: Dict[str, Any]) -> Any:
        resp = requests.request(
            "GET",
            f"{GITHUB_API}{path}",
            params=params,
            headers=self._base_headers(self._authorization()),
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        return resp.json()

    def get_recent_commits(
        self,
        repo: str,
        since: datetime,
        until: datetime,
        branch: str = "main",
        limit: int = 30,
    ) -> List[Dict[str, Any]]:
        params = {
            "sha": branch,
            "since": since.isoformat(),
            "until": until.isoformat(),
            "per_page": max(1, min(limit, 100)),
        }
        try:
            raw = self._get(f"/repos/{repo}/commits", params)
        except Exception as e:
            return [{"error": f"github_error:{type(e).__name__}", "message": str(e)}]
        return [_commit_summary(c) for c in list(raw)[:limit]]


_provider: Optional[GitHubProvider] = None


def get_github_provider() -> GitHubProvider:
    global _provider
    if _provider is None:
        _provider = DefaultGitHubProvider()
    return _provider


def set_github_provider(provider: Optional[GitHubProvider]) -> None:
    """Install (or clear, with None) the process-wide provider."""
    global _provider
    _provider = provider
