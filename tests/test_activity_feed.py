from __future__ import annotations

from datetime import datetime, timezone

from folio.core.models import ActivityItem, Category, Project, Skill
from folio.feed.aggregator import (
    build_feed,
    categories_to_items,
    collect_sources,
    commits_to_items,
    default_sources,
    merge_feed,
    records_to_items,
)
from folio.feed.config import FeedConfig


def _item(kind: str, ts: str) -> ActivityItem:
    return ActivityItem(type=kind, title=kind, timestamp=ts)  # type: ignore[arg-type]


def test_merge_orders_newest_first() -> None:
    commits = [_item("commit", "2024-01-01T10:00:00.000Z")]
    projects = [_item("project", "2024-01-02T10:00:00.000Z")]
    merged = merge_feed([commits, projects])
    assert [i.type for i in merged] == ["project", "commit"]


def test_merge_caps_at_limit() -> None:
    items = [_item("project", f"2024-01-{d:02d}T00:00:00.000Z") for d in range(1, 21)]
    merged = merge_feed([items], limit=10)
    assert len(merged) == 10
    assert merged[0].timestamp.startswith("2024-01-20")


def test_merge_drops_unparseable_timestamps() -> None:
    merged = merge_feed([[_item("project", "not-a-date"), _item("commit", "2024-01-01T00:00:00Z")]])
    assert [i.type for i in merged] == ["commit"]


def test_merge_handles_mixed_offsets() -> None:
    a = _item("commit", "2024-01-01T12:00:00+02:00")  # 10:00Z
    b = _item("project", "2024-01-01T11:00:00Z")
    assert [i.type for i in merge_feed([[a], [b]])] == ["project", "commit"]


def test_commits_to_items_uses_first_message_line() -> None:
    items = commits_to_items(
        [
            {
                "sha": "abc1234",
                "message": "Fix header\n\nLonger body",
                "author": {"name": "Dev", "date": "2024-03-01T08:00:00Z"},
                "html_url": "https://github.com/o/r/commit/abc1234",
            }
        ]
    )
    assert len(items) == 1
    assert items[0].title == "Fix header"
    assert items[0].url == "https://github.com/o/r/commit/abc1234"
    assert items[0].timestamp == "2024-03-01T08:00:00.000Z"


def test_records_to_items_emits_added_and_updated() -> None:
    p = Project(title="Site", createdAt="2024-01-01T00:00:00.000Z", updatedAt="2024-02-01T00:00:00.000Z")
    items = records_to_items("project", [p], title_of=lambda r: r.title)
    assert [i.title for i in items] == ["Project added: Site", "Project updated: Site"]


def test_records_without_stamps_contribute_nothing() -> None:
    assert records_to_items("project", [Project(title="Bare")], title_of=lambda r: r.title) == []


def test_categories_to_items_describes_category() -> None:
    cat = Category(name="Languages", skills=[Skill(name="Go", createdAt="2024-01-01T00:00:00.000Z")])
    items = categories_to_items([cat])
    assert items[0].title == "Skill added: Go"
    assert items[0].description == "Languages"


def test_failing_source_is_isolated() -> None:
    def broken():
        raise RuntimeError("boom")

    sources = {
        "commits": lambda: commits_to_items([{"error": "github_error:HTTPError", "message": "403"}]),
        "projects": lambda: [_item("project", "2024-01-02T00:00:00Z")],
        "broken": broken,
    }
    groups, failed = collect_sources(sources)
    assert sorted(failed) == ["broken", "commits"]
    assert [i.type for g in groups for i in g] == ["project"]
    assert [i.type for i in build_feed(sources)] == ["project"]


class _FakeGitHub:
    def __init__(self) -> None:
        self.calls = []

    def get_recent_commits(self, repo, since, until, branch="main", limit=30):
        self.calls.append((repo, since, until, branch, limit))
        return [{"message": "Init", "author": {"name": "Dev", "date": "2024-01-05T00:00:00Z"}, "html_url": ""}]


def test_default_sources_skip_commits_without_repo(tmp_path) -> None:
    from folio.docstore.config import load_docstore_config
    from folio.docstore.local_store import LocalDocumentStore
    from folio.records.registry import build_registry

    reg = build_registry(LocalDocumentStore(base_dir=str(tmp_path / "d")), load_docstore_config())
    cfg = FeedConfig(github_repo=None, github_branch="main", limit=10, commit_days=30)
    assert "commits" not in default_sources(reg, _FakeGitHub(), cfg)


def test_default_sources_merge_commits_and_records(tmp_path) -> None:
    from folio.docstore.config import load_docstore_config
    from folio.docstore.local_store import LocalDocumentStore
    from folio.records.registry import build_registry

    reg = build_registry(LocalDocumentStore(base_dir=str(tmp_path / "d")), load_docstore_config())
    reg.projects.load()
    reg.projects.add(Project(title="Site"))

    gh = _FakeGitHub()
    cfg = FeedConfig(github_repo="owner/repo", github_branch="main", limit=10, commit_days=7)
    now = datetime(2024, 1, 10, tzinfo=timezone.utc)
    feed = build_feed(default_sources(reg, gh, cfg, now=now), limit=cfg.limit)

    assert [i.type for i in feed] == ["project", "commit"]
    repo, since, until, branch, _limit = gh.calls[0]
    assert repo == "owner/repo"
    assert (until - since).days == 7
