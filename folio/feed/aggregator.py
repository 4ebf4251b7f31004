"""
Activity feed: one reverse-chronological list merged from heterogeneous sources.

Sources are commit history from GitHub and the `createdAt` / `updatedAt` stamps of every
collection record. Each source is fetched independently; a failing source is logged and
skipped so the remaining sources still contribute.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from folio.core.models import ActivityItem, BaseRecord, Category
from folio.core.stamps import format_iso, parse_iso, utcnow
from folio.feed.config import DEFAULT_FEED_LIMIT, FeedConfig

logger = logging.getLogger(__name__)

FeedSource = Callable[[], List[ActivityItem]]

_LABELS = {
    "project": "Project",
    "certification": "Certification",
    "timeline": "Timeline event",
    "skill": "Skill",
    "key_skill": "Key skill",
}


class SourceFailed(Exception):
    """A feed source returned an error payload instead of data."""


def commits_to_items(commits: Iterable[Dict[str, Any]]) -> List[ActivityItem]:
    """Normalize `[{message, author: {date}, html_url}]` into feed items."""
    items: List[ActivityItem] = []
    for c in commits:
        if not isinstance(c, dict):
            continue
        if c.get("error"):
            raise SourceFailed(f"{c.get('error')}: {c.get('message', '')}")
        author = c.get("author") if isinstance(c.get("author"), dict) else {}
        ts = parse_iso(author.get("date"))
        if ts is None:
            continue
        message = str(c.get("message") or "").strip()
        title, _, rest = message.partition("\n")
        items.append(
            ActivityItem(
                type="commit",
                title=title or "Commit",
                description=rest.strip() or str(author.get("name") or ""),
                timestamp=format_iso(ts),
                url=str(c.get("html_url") or "") or None,
            )
        )
    return items


def records_to_items(
    kind: str,
    records: Iterable[BaseRecord],
    *,
    title_of: Callable[[Any], str],
    description_of: Callable[[Any], str] = lambda r: str(getattr(r, "description", "") or ""),
) -> List[ActivityItem]:
    """
    One "added" item per `createdAt`, plus one "updated" item when `updatedAt` differs.

    Records without parseable stamps contribute nothing.
    """
    label = _LABELS.get(kind, kind)
    items: List[ActivityItem] = []
    for r in records:
        title = title_of(r) or "Untitled"
        description = description_of(r)
        created = parse_iso(r.created_at)
        updated = parse_iso(r.updated_at)
        if created is not None:
            items.append(
                ActivityItem(
                    type=kind,  # type: ignore[arg-type]
                    title=f"{label} added: {title}",
                    description=description,
                    timestamp=format_iso(created),
                )
            )
        if updated is not None and (created is None or updated > created):
            items.append(
                ActivityItem(
                    type=kind,  # type: ignore[arg-type]
                    title=f"{label} updated: {title}",
                    description=description,
                    timestamp=format_iso(updated),
                )
            )
    return items


def categories_to_items(categories: Iterable[Category]) -> List[ActivityItem]:
    items: List[ActivityItem] = []
    for cat in categories:
        items.extend(
            records_to_items(
                "skill",
                cat.skills,
                title_of=lambda s: s.name,
                description_of=lambda _s, _name=cat.name: _name,
            )
        )
    return items


def _sort_key(item: ActivityItem) -> datetime:
    return parse_iso(item.timestamp) or datetime.min.replace(tzinfo=timezone.utc)


def merge_feed(groups: Sequence[Iterable[ActivityItem]], *, limit: int = DEFAULT_FEED_LIMIT) -> List[ActivityItem]:
    """Concatenate, sort newest-first and cap. Items with unparseable timestamps are dropped."""
    merged = [item for group in groups for item in group if parse_iso(item.timestamp) is not None]
    merged.sort(key=_sort_key, reverse=True)
    return merged[: max(0, limit)]


def collect_sources(sources: Mapping[str, FeedSource]) -> Tuple[List[List[ActivityItem]], List[str]]:
    """Run every source in isolation. Returns (item groups, names of failed sources)."""
    groups: List[List[ActivityItem]] = []
    failed: List[str] = []
    for name, fetch in sources.items():
        try:
            groups.append(list(fetch()))
        except Exception as e:
            logger.warning("Activity feed: source %s failed: %s", name, e)
            failed.append(name)
    return groups, failed


def build_feed(sources: Mapping[str, FeedSource], *, limit: int = DEFAULT_FEED_LIMIT) -> List[ActivityItem]:
    groups, _failed = collect_sources(sources)
    return merge_feed(groups, limit=limit)


def default_sources(registry: Any, github: Any, cfg: FeedConfig, *, now: Optional[datetime] = None) -> Dict[str, FeedSource]:
    """
    Sources for the dashboard feed. Every call re-fetches; nothing is cached between renders.

    `registry` is a `StoreRegistry`; `github` a `GitHubProvider`.
    """
    sources: Dict[str, FeedSource] = {}

    if cfg.github_repo and github is not None:
        repo = cfg.github_repo

        def _commits() -> List[ActivityItem]:
            until = now or utcnow()
            since = until - timedelta(days=cfg.commit_days)
            return commits_to_items(
                github.get_recent_commits(repo, since=since, until=until, branch=cfg.github_branch, limit=cfg.limit)
            )

        sources["commits"] = _commits

    sources["projects"] = lambda: records_to_items("project", registry.projects.load(), title_of=lambda r: r.title)
    sources["certifications"] = lambda: records_to_items(
        "certification",
        registry.certifications.load(),
        title_of=lambda r: r.title,
        description_of=lambda r: r.issuer,
    )
    sources["timeline"] = lambda: records_to_items(
        "timeline", registry.timeline.load(), title_of=lambda r: f"{r.year} {r.title}".strip()
    )
    sources["key_skills"] = lambda: records_to_items(
        "key_skill", registry.key_skills.load(), title_of=lambda r: r.name, description_of=lambda _r: ""
    )
    sources["skills"] = lambda: categories_to_items(registry.skills.load())
    return sources
