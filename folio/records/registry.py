from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from folio.core.models import Certification, KeySkill, Project, TimelineEvent
from folio.docstore import get_document_store
from folio.docstore.base import DocumentStore
from folio.docstore.config import DocstoreConfig, load_docstore_config
from folio.records.entities import certifications_store, key_skills_store, projects_store, timeline_store
from folio.records.skills import SkillsStore
from folio.records.store import CollectionStore


@dataclass
class StoreRegistry:
    """One collection store per entity type, sharing a document store."""

    projects: CollectionStore[Project]
    certifications: CollectionStore[Certification]
    timeline: CollectionStore[TimelineEvent]
    key_skills: CollectionStore[KeySkill]
    skills: SkillsStore

    def flat_collections(self) -> Dict[str, CollectionStore]:
        """Collections served by the generic CRUD routes, keyed by URL segment."""
        return {
            "projects": self.projects,
            "certifications": self.certifications,
            "timeline": self.timeline,
            "key-skills": self.key_skills,
        }


def build_registry(docstore: DocumentStore, cfg: DocstoreConfig) -> StoreRegistry:
    return StoreRegistry(
        projects=projects_store(docstore, cfg.projects_ref),
        certifications=certifications_store(docstore, cfg.certifications_ref),
        timeline=timeline_store(docstore, cfg.timeline_ref),
        key_skills=key_skills_store(docstore, cfg.key_skills_ref),
        skills=SkillsStore(docstore, cfg.skills_ref),
    )


_registry: Optional[StoreRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> StoreRegistry:
    """Process-wide registry; mirrors live as long as the server process."""
    global _registry
    if _registry is not None:
        return _registry
    with _registry_lock:
        if _registry is None:
            _registry = build_registry(get_document_store(), load_docstore_config())
        return _registry


def set_registry(registry: Optional[StoreRegistry]) -> None:
    """Install (or clear, with None) the process-wide registry. Used by tests."""
    global _registry
    with _registry_lock:
        _registry = registry
