from __future__ import annotations

import threading
import time

import pytest

from folio.core.errors import DuplicateKey, NotFound, ValidationFailed
from folio.docstore.base import DocumentRef
from folio.docstore.local_store import LocalDocumentStore
from folio.records.skills import SkillsStore

REF = DocumentRef(collection="skills", doc_id="categories")


@pytest.fixture
def docstore(tmp_path) -> LocalDocumentStore:
    return LocalDocumentStore(base_dir=str(tmp_path / "docs"))


@pytest.fixture
def store(docstore) -> SkillsStore:
    s = SkillsStore(docstore, REF)
    s.load()
    return s


def test_second_identical_skill_is_rejected(store) -> None:
    store.add_category("Frontend")
    store.add_skill("Frontend", "React")

    with pytest.raises(DuplicateKey, match="skill already exists"):
        store.add_skill("Frontend", "React")

    cat = store.find_category("Frontend")
    assert cat is not None
    assert [s.name for s in cat.skills] == ["React"]


def test_skill_names_compare_case_insensitively(store) -> None:
    store.add_category("Frontend")
    store.add_skill("Frontend", "React")
    with pytest.raises(DuplicateKey):
        store.add_skill("frontend", "react")


def test_remove_category_cascades_to_its_skills(store, docstore) -> None:
    store.add_category("Languages")
    store.add_category("Tools")
    for name in ("Python", "Go", "Rust"):
        store.add_skill("Languages", name)
    store.add_skill("Tools", "Docker")
    assert store.total_skills() == 4

    assert store.remove_category("Languages") is True

    assert store.total_skills() == 1
    assert [c.name for c in store.items()] == ["Tools"]
    remote = docstore.get_document(REF).data["categories"]
    assert [c["name"] for c in remote] == ["Tools"]


def test_remove_unknown_category_is_noop(store) -> None:
    assert store.remove_category("Nope") is False


def test_duplicate_category_rejected(store) -> None:
    store.add_category("Languages")
    with pytest.raises(DuplicateKey, match="Category already exists"):
        store.add_category("languages")


def test_add_skill_to_unknown_category(store) -> None:
    with pytest.raises(NotFound):
        store.add_skill("Ghost", "React")


def test_add_skill_validates_level(store) -> None:
    store.add_category("Backend")
    with pytest.raises(ValidationFailed):
        store.add_skill("Backend", {"name": "SQL", "level": 140})
    with pytest.raises(ValidationFailed):
        store.add_skill("Backend", "  ")


def test_update_and_remove_skill(store) -> None:
    store.add_category("Backend")
    store.add_skill("Backend", {"name": "SQL", "level": 50})

    updated = store.update_skill("Backend", "sql", {"level": 80})
    assert updated.level == 80
    assert updated.name == "SQL"

    assert store.remove_skill("Backend", "SQL") is True
    assert store.remove_skill("Backend", "SQL") is False
    assert store.total_skills() == 0


def test_rename_category_keeps_skills(store) -> None:
    store.add_category("Langs")
    store.add_skill("Langs", "Python")

    renamed = store.rename_category("Langs", "Languages")

    assert renamed.name == "Languages"
    assert [s.name for s in renamed.skills] == ["Python"]
    assert store.find_category("Langs") is None


def test_skills_survive_reload(store, docstore) -> None:
    store.add_category("Languages")
    store.add_skill("Languages", "Python")

    fresh = SkillsStore(docstore, REF)
    fresh.load()
    assert fresh.total_skills() == 1


def test_update_skill_enforces_level_range(store) -> None:
    store.add_category("Languages")
    store.add_skill("Languages", {"name": "Python", "level": 70})

    with pytest.raises(ValidationFailed, match="between 0 and 100"):
        store.update_skill("Languages", "Python", {"level": 500})

    cat = store.find_category("Languages")
    assert cat is not None
    assert cat.skills[0].level == 70


def test_update_skill_rejects_non_integer_level(store) -> None:
    store.add_category("Languages")
    store.add_skill("Languages", "Python")
    with pytest.raises(ValidationFailed, match="Invalid skill"):
        store.update_skill("Languages", "Python", {"level": "abc"})


def test_add_skill_rejects_malformed_mapping(store) -> None:
    store.add_category("Languages")
    with pytest.raises(ValidationFailed):
        store.add_skill("Languages", {"name": "Python", "level": "lots"})
    assert store.total_skills() == 0


class _SlowReplaceStore(LocalDocumentStore):
    """Widens the window between reading a category and writing it back."""

    def array_replace(self, ref, field, old, new) -> None:
        time.sleep(0.2)
        super().array_replace(ref, field, old, new)


def test_concurrent_skill_adds_keep_both_skills(tmp_path) -> None:
    docstore = _SlowReplaceStore(base_dir=str(tmp_path / "docs"))
    store = SkillsStore(docstore, REF)
    store.load()
    store.add_category("Languages")

    errors = []

    def _add(name: str) -> None:
        try:
            store.add_skill("Languages", name)
        except Exception as e:  # surfaced through the assertion below
            errors.append(e)

    threads = [threading.Thread(target=_add, args=(n,)) for n in ("React", "Vue")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    remote = docstore.get_document(REF).data["categories"]
    assert len(remote) == 1
    assert sorted(s["name"] for s in remote[0]["skills"]) == ["React", "Vue"]
    assert [sorted(s.name for s in c.skills) for c in store.items()] == [["React", "Vue"]]
