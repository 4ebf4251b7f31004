"""
Skill categories: each category record owns a nested list of skills.

Skills are not stored in their own array; every skill change rewrites the owning category
value, and deleting a category drops its skills in the same write.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from folio.core.errors import DuplicateKey, NotFound, ValidationFailed
from folio.core.models import Category, Skill
from folio.core.stamps import iso_now, new_record_id
from folio.docstore.base import DocumentRef, DocumentStore
from folio.records.entities import key_by_id_or_name
from folio.records.store import CollectionStore, serialized


def validate_category(c: Category) -> None:
    if not (c.name or "").strip():
        raise ValidationFailed("Please enter a category name", field="name")


DUPLICATE_SKILL = "skill already exists"


def validate_skill(s: Skill) -> None:
    if not (s.name or "").strip():
        raise ValidationFailed("Please enter a skill name", field="name")
    if s.level is not None and not (0 <= s.level <= 100):
        raise ValidationFailed("Skill level must be between 0 and 100", field="level")


def _parse_skill(raw: Dict[str, Any]) -> Skill:
    try:
        return Skill.model_validate(raw)
    except ValidationError as e:
        raise ValidationFailed(f"Invalid skill: {e.errors()[0].get('msg', 'invalid value')}") from e


def _skill_matches(raw: Any, ref: str) -> bool:
    if not isinstance(raw, dict):
        return False
    if raw.get("id") and raw.get("id") == ref:
        return True
    return str(raw.get("name") or "").strip().lower() == ref.strip().lower()


class SkillsStore(CollectionStore[Category]):
    """Collection store over categories, with skill-level operations on top."""

    def __init__(self, docstore: DocumentStore, ref: DocumentRef, *, field: str = "categories") -> None:
        super().__init__(
            name="skills",
            docstore=docstore,
            ref=ref,
            field=field,
            model=Category,
            key_of=key_by_id_or_name,
            validate=validate_category,
            unique_of=lambda c: c.name.strip().lower(),
            unique_message="Category already exists",
        )

    def find_category(self, name_or_id: str) -> Optional[Category]:
        """Look a category up by id, then by exact name, then case-insensitively."""
        items = self.items()
        for c in items:
            if c.id and c.id == name_or_id:
                return c
        for c in items:
            if c.name == name_or_id:
                return c
        wanted = (name_or_id or "").strip().lower()
        for c in items:
            if c.name.strip().lower() == wanted:
                return c
        return None

    def _require_category(self, name_or_id: str) -> Category:
        category = self.find_category(name_or_id)
        if category is None:
            raise NotFound(f"Category {name_or_id!r} not found", key=name_or_id)
        return category

    def _raw_skills(self, category: Category) -> List[Dict[str, Any]]:
        raw = self.raw_for(self.key_of(category)) or {}
        skills = raw.get("skills")
        return list(skills) if isinstance(skills, list) else []

    def add_category(self, name: str) -> Category:
        return self.add(Category(name=name))

    @serialized
    def rename_category(self, name_or_id: str, new_name: str) -> Category:
        category = self._require_category(name_or_id)
        return self.update(self.key_of(category), {"name": new_name})

    @serialized
    def remove_category(self, name_or_id: str) -> bool:
        """Remove a category and, with it, every nested skill. Unknown category is a no-op."""
        category = self.find_category(name_or_id)
        if category is None:
            return False
        return self.remove(self.key_of(category))

    @serialized
    def add_skill(self, category_name: str, skill: Union[Skill, Mapping[str, Any], str]) -> Skill:
        category = self._require_category(category_name)
        if isinstance(skill, str):
            skill = Skill(name=skill)
        elif not isinstance(skill, Skill):
            skill = _parse_skill(dict(skill))
        validate_skill(skill)

        current = self._raw_skills(category)
        if any(_skill_matches(s, skill.name) for s in current):
            raise DuplicateKey(DUPLICATE_SKILL, field="name")

        stored = skill.model_copy(update={"id": skill.id or new_record_id(), "created_at": iso_now()})
        self.update(self.key_of(category), {"skills": current + [stored.to_document_value()]})
        return stored

    @serialized
    def update_skill(self, category_name: str, skill_ref: str, patch: Mapping[str, Any]) -> Skill:
        category = self._require_category(category_name)
        current = self._raw_skills(category)
        for i, raw in enumerate(current):
            if _skill_matches(raw, skill_ref):
                merged = dict(raw)
                merged.update({k: v for k, v in dict(patch).items() if k not in ("id", "createdAt")})
                merged["updatedAt"] = iso_now()
                skill = _parse_skill(merged)
                validate_skill(skill)
                if any(j != i and _skill_matches(s, skill.name) for j, s in enumerate(current)):
                    raise DuplicateKey(DUPLICATE_SKILL, field="name")
                current[i] = skill.to_document_value()
                self.update(self.key_of(category), {"skills": current})
                return skill
        raise NotFound(f"Skill {skill_ref!r} not found in {category.name!r}", key=skill_ref)

    @serialized
    def remove_skill(self, category_name: str, skill_ref: str) -> bool:
        """Drop one skill from a category. Unknown category or skill is a no-op."""
        category = self.find_category(category_name)
        if category is None:
            return False
        current = self._raw_skills(category)
        remaining = [s for s in current if not _skill_matches(s, skill_ref)]
        if len(remaining) == len(current):
            return False
        self.update(self.key_of(category), {"skills": remaining})
        return True

    def total_skills(self) -> int:
        return sum(len(c.skills) for c in self.items())
