from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

DEFAULT_FEED_LIMIT = 10


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        v = int(raw) if raw else default
    except ValueError:
        v = default
    return v if v >= minimum else default


@dataclass(frozen=True)
class FeedConfig:
    github_repo: Optional[str]  # "owner/repo"; commit source is skipped when unset
    github_branch: str
    limit: int
    commit_days: int


@lru_cache(maxsize=1)
def load_feed_config() -> FeedConfig:
    return FeedConfig(
        github_repo=(os.getenv("GITHUB_REPO") or "").strip().strip("/") or None,
        github_branch=(os.getenv("GITHUB_BRANCH") or "").strip() or "main",
        limit=_env_int("ACTIVITY_FEED_LIMIT", DEFAULT_FEED_LIMIT),
        commit_days=_env_int("ACTIVITY_COMMIT_DAYS", 30),
    )
