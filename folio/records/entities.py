"""Per-entity collection stores: field checks, keys and ordering for each record type."""

from __future__ import annotations

from typing import Hashable

from folio.core.errors import ValidationFailed
from folio.core.models import BaseRecord, Certification, KeySkill, Project, TimelineEvent
from folio.core.stamps import utcnow
from folio.docstore.base import DocumentRef, DocumentStore
from folio.records.store import CollectionStore

TIMELINE_MIN_YEAR = 1900
TIMELINE_FUTURE_YEARS = 100


def key_by_id_or_created(record: BaseRecord) -> Hashable:
    # Legacy timeline events carry no id; their createdAt stamp is the key.
    return record.id or record.created_at


def key_by_id_or_name(record: BaseRecord) -> Hashable:
    return record.id or (getattr(record, "name", "") or "").strip()


def _require(value: object, message: str, field: str) -> str:
    s = str(value or "").strip()
    if not s:
        raise ValidationFailed(message, field=field)
    return s


def validate_project(p: Project) -> None:
    _require(p.title, "Please enter a project title", "title")


def validate_certification(c: Certification) -> None:
    _require(c.title, "Please enter a title", "title")
    _require(c.issuer, "Please enter an issuer", "issuer")


def validate_timeline_event(ev: TimelineEvent) -> None:
    if not ev.year:
        raise ValidationFailed("Please enter a year", field="year")
    max_year = utcnow().year + TIMELINE_FUTURE_YEARS
    if ev.year < TIMELINE_MIN_YEAR or ev.year > max_year:
        raise ValidationFailed(
            f"Please enter a valid year between {TIMELINE_MIN_YEAR} and {max_year}",
            field="year",
        )
    title = _require(ev.title, "Please enter a title", "title")
    if len(title) < 3:
        raise ValidationFailed("Title must be at least 3 characters long", field="title")
    description = _require(ev.description, "Please enter a description", "description")
    if len(description) < 10:
        raise ValidationFailed("Description must be at least 10 characters long", field="description")


def validate_key_skill(k: KeySkill) -> None:
    _require(k.name, "Please enter a skill name", "name")


def projects_store(docstore: DocumentStore, ref: DocumentRef) -> CollectionStore[Project]:
    return CollectionStore(
        name="projects",
        docstore=docstore,
        ref=ref,
        field="projects",
        model=Project,
        validate=validate_project,
    )


def certifications_store(docstore: DocumentStore, ref: DocumentRef) -> CollectionStore[Certification]:
    return CollectionStore(
        name="certifications",
        docstore=docstore,
        ref=ref,
        field="certifications",
        model=Certification,
        validate=validate_certification,
    )


def timeline_store(docstore: DocumentStore, ref: DocumentRef) -> CollectionStore[TimelineEvent]:
    return CollectionStore(
        name="timeline",
        docstore=docstore,
        ref=ref,
        field="events",
        model=TimelineEvent,
        key_of=key_by_id_or_created,
        validate=validate_timeline_event,
        sort_key=lambda ev: ev.year or 0,
        sort_reverse=True,
    )


def key_skills_store(docstore: DocumentStore, ref: DocumentRef) -> CollectionStore[KeySkill]:
    return CollectionStore(
        name="key-skills",
        docstore=docstore,
        ref=ref,
        field="skills",
        model=KeySkill,
        key_of=key_by_id_or_name,
        validate=validate_key_skill,
        unique_of=lambda k: k.name.strip().lower(),
        unique_message="Key skill already exists",
    )
