"""
Collection stores: read mirrors with write-through mutations over one document array field.
"""

from folio.records.registry import StoreRegistry, build_registry, get_registry, set_registry
from folio.records.skills import SkillsStore
from folio.records.store import CollectionStore

__all__ = ["CollectionStore", "SkillsStore", "StoreRegistry", "build_registry", "get_registry", "set_registry"]
