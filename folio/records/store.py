"""
Generic collection store: an in-memory mirror of one array field inside one document.

Every mutation is write-through: the remote document is written first and the mirror is
only touched after the write succeeded, so a failed call leaves the mirror at its
pre-operation value.
"""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from folio.core.errors import DuplicateKey, LoadFailed, NotFound, RemoteWriteFailed, ValidationFailed
from folio.core.models import BaseRecord
from folio.core.stamps import iso_now, new_record_id
from folio.docstore.base import DocumentRef, DocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseRecord)

KeyFn = Callable[[BaseRecord], Hashable]
Validator = Callable[[Any], None]

# Fields a patch may never change: the key and the creation stamp.
_IMMUTABLE_FIELDS = ("id", "createdAt")


def default_key(record: BaseRecord) -> Hashable:
    return record.id


def serialized(method):
    """Run a store method under the store's write lock (reentrant, held across the remote write)."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._write_lock:
            return method(self, *args, **kwargs)

    return wrapper


@dataclass
class _Entry(Generic[T]):
    record: T
    # Exact stored value; value-based removal must match it byte for byte.
    raw: Dict[str, Any]


class CollectionStore(Generic[T]):
    """
    Mirror + write-through CRUD for records of type `T` stored in `ref[field]`.

    Args:
        name: Collection name used in logs and errors (e.g. "projects").
        docstore: Document store backend.
        ref: Document holding the collection.
        field: Array field inside the document.
        model: Record model class.
        key_of: Key extraction; defaults to the record `id`.
        validate: Raises `ValidationFailed` for unacceptable records (called on add and update).
        unique_of: Optional secondary uniqueness token (e.g. lower-cased name).
        sort_key / sort_reverse: Declared mirror order; insertion order when `sort_key` is None.
    """

    def __init__(
        self,
        *,
        name: str,
        docstore: DocumentStore,
        ref: DocumentRef,
        field: str,
        model: Type[T],
        key_of: KeyFn = default_key,
        validate: Optional[Validator] = None,
        unique_of: Optional[Callable[[T], Hashable]] = None,
        unique_message: str = "",
        sort_key: Optional[Callable[[T], Any]] = None,
        sort_reverse: bool = False,
    ) -> None:
        self.name = name
        self.ref = ref
        self.field = field
        self.model = model
        self._docstore = docstore
        self._key_of = key_of
        self._validate = validate
        self._unique_of = unique_of
        self._unique_message = unique_message or f"{name}: an entry with this name already exists"
        self._sort_key = sort_key
        self._sort_reverse = sort_reverse

        self._entries: List[_Entry[T]] = []
        self._lock = threading.RLock()
        # One mutation at a time: read of the old value, remote write and mirror update.
        self._write_lock = threading.RLock()
        # Bumped by every load and mutation; a load whose token is stale discards its result.
        self._generation = 0
        self._loaded = False

    # ---- reads ----

    @property
    def loaded(self) -> bool:
        return self._loaded

    def items(self) -> List[T]:
        with self._lock:
            return [e.record for e in self._entries]

    def raw_items(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e.raw) for e in self._entries]

    def get(self, key: Hashable) -> Optional[T]:
        with self._lock:
            entry = self._find(key)
            return entry.record if entry else None

    def raw_for(self, key: Hashable) -> Optional[Dict[str, Any]]:
        """Stored value of the record with `key` (a copy), or None."""
        with self._lock:
            entry = self._find(key)
            return dict(entry.raw) if entry else None

    def key_of(self, record: T) -> Hashable:
        return self._key_of(record)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _find(self, key: Hashable) -> Optional[_Entry[T]]:
        for e in self._entries:
            if self._key_of(e.record) == key:
                return e
        return None

    def _sort(self) -> None:
        if self._sort_key is not None:
            self._entries.sort(key=lambda e: self._sort_key(e.record), reverse=self._sort_reverse)

    def _bump(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    # ---- load ----

    def _parse(self, values: Iterable[Any]) -> List[_Entry[T]]:
        entries: List[_Entry[T]] = []
        for v in values:
            if not isinstance(v, dict):
                logger.warning("%s: skipping non-object element in %s.%s", self.name, self.ref.path, self.field)
                continue
            try:
                entries.append(_Entry(record=self.model.model_validate(v), raw=v))
            except ValidationError as e:
                logger.warning("%s: skipping unparseable record in %s: %s", self.name, self.ref.path, e)
        return entries

    def load(self) -> List[T]:
        """
        Fetch the document and replace the mirror wholesale.

        Missing document or field loads as an empty list. On failure raises `LoadFailed` and the
        mirror keeps its previous (stale but consistent) contents.
        """
        token = self._bump()
        try:
            snap = self._docstore.get_document(self.ref)
        except Exception as e:
            logger.warning("%s: load failed for %s: %s", self.name, self.ref.path, e)
            raise LoadFailed(f"Failed to load {self.name}", collection=self.name) from e

        values = snap.data.get(self.field) if snap.exists else None
        entries = self._parse(values if isinstance(values, list) else [])

        with self._lock:
            if token != self._generation:
                logger.debug("%s: discarding superseded load (token=%d, current=%d)", self.name, token, self._generation)
                return [e.record for e in self._entries]
            self._entries = entries
            self._sort()
            self._loaded = True
            return [e.record for e in self._entries]

    def ensure_loaded(self) -> List[T]:
        if not self._loaded:
            return self.load()
        return self.items()

    # ---- helpers ----

    def _check_unique(self, record: T, *, exclude: Optional[_Entry[T]] = None) -> None:
        if self._unique_of is None:
            return
        token = self._unique_of(record)
        for e in self._entries:
            if e is exclude:
                continue
            if self._unique_of(e.record) == token:
                raise DuplicateKey(self._unique_message)

    def _patch_to_raw(self, patch: Union[Mapping[str, Any], BaseModel]) -> Dict[str, Any]:
        if isinstance(patch, BaseModel):
            out = patch.model_dump(by_alias=True, exclude_unset=True)
        else:
            aliases = {name: (f.alias or name) for name, f in self.model.model_fields.items()}
            out = {aliases.get(k, k): v for k, v in dict(patch).items()}
        for k in _IMMUTABLE_FIELDS:
            out.pop(k, None)
        return out

    def _run_validation(self, record: T) -> None:
        if self._validate is not None:
            self._validate(record)

    # ---- mutations ----

    @serialized
    def add(self, candidate: T) -> T:
        """
        Validate, stamp, write (array union), then append to the mirror.

        Returns the stored record including generated `id` / `createdAt` / `updatedAt`.
        """
        self._run_validation(candidate)

        now = iso_now()
        record = candidate.model_copy(
            update={
                "id": candidate.id or new_record_id(),
                "created_at": now,
                "updated_at": now,
            }
        )
        key = self._key_of(record)
        with self._lock:
            if self._find(key) is not None:
                raise DuplicateKey(f"{self.name}: key {key!r} already exists")
            self._check_unique(record)
        raw = record.to_document_value()

        try:
            self._docstore.array_union(self.ref, self.field, raw)
        except Exception as e:
            logger.warning("%s: add failed for %s: %s", self.name, self.ref.path, e)
            raise RemoteWriteFailed(f"Failed to add {self.name} entry", collection=self.name) from e

        with self._lock:
            self._generation += 1
            self._entries.append(_Entry(record=record, raw=raw))
            self._sort()
        logger.info("%s: added %s", self.name, key)
        return record

    @serialized
    def update(self, key: Hashable, patch: Union[Mapping[str, Any], BaseModel]) -> T:
        """
        Merge `patch` into the record with `key` and write the whole new value.

        Fields absent from `patch` are preserved; `updatedAt` is always refreshed. Raises
        `NotFound` when the key is not in the mirror.
        """
        with self._lock:
            entry = self._find(key)
            if entry is None:
                raise NotFound(f"{self.name}: no entry with key {key!r}", key=key)
            old_raw = entry.raw

        merged_raw = dict(old_raw)
        merged_raw.update(self._patch_to_raw(patch))
        merged_raw["updatedAt"] = iso_now()
        try:
            record = self.model.model_validate(merged_raw)
        except ValidationError as e:
            raise ValidationFailed(f"Invalid {self.name} entry: {e.errors()[0].get('msg', 'invalid value')}") from e
        self._run_validation(record)
        with self._lock:
            self._check_unique(record, exclude=entry)
        new_raw = record.to_document_value()

        try:
            replace = getattr(self._docstore, "array_replace", None)
            if callable(replace):
                replace(self.ref, self.field, old_raw, new_raw)
            else:
                # Two writes: a failure between them leaves the record deleted remotely.
                self._docstore.array_remove(self.ref, self.field, old_raw)
                self._docstore.array_union(self.ref, self.field, new_raw)
        except Exception as e:
            logger.warning("%s: update failed for %s: %s", self.name, key, e)
            raise RemoteWriteFailed(f"Failed to update {self.name} entry", collection=self.name) from e

        with self._lock:
            self._generation += 1
            for i, e in enumerate(self._entries):
                if e is entry or self._key_of(e.record) == key:
                    self._entries[i] = _Entry(record=record, raw=new_raw)
                    break
            else:
                self._entries.append(_Entry(record=record, raw=new_raw))
            self._sort()
        logger.info("%s: updated %s", self.name, key)
        return record

    @serialized
    def remove(self, key: Hashable) -> bool:
        """
        Remove the record with `key` (exact-value array remove).

        Returns False, without any remote call, when the key is not in the mirror.
        """
        with self._lock:
            entry = self._find(key)
            if entry is None:
                return False
            raw = entry.raw

        try:
            self._docstore.array_remove(self.ref, self.field, raw)
        except Exception as e:
            logger.warning("%s: remove failed for %s: %s", self.name, key, e)
            raise RemoteWriteFailed(f"Failed to remove {self.name} entry", collection=self.name) from e

        with self._lock:
            self._generation += 1
            self._entries = [e for e in self._entries if e is not entry]
        logger.info("%s: removed %s", self.name, key)
        return True

    def remove_many(self, keys: Iterable[Hashable]) -> int:
        """Sequential `remove` per key (not transactional). Returns how many were removed."""
        removed = 0
        for key in list(keys):
            if self.remove(key):
                removed += 1
        return removed

    @serialized
    def replace_all(self, records: Iterable[T]) -> List[T]:
        """
        Overwrite the whole array field with `records` (whole-document write).

        Other fields of the document are preserved. Records are validated and stamped like `add`.
        """
        now = iso_now()
        stamped: List[_Entry[T]] = []
        seen: set = set()
        for r in records:
            self._run_validation(r)
            rec = r.model_copy(
                update={
                    "id": r.id or new_record_id(),
                    "created_at": r.created_at or now,
                    "updated_at": now,
                }
            )
            key = self._key_of(rec)
            if key in seen:
                raise DuplicateKey(f"{self.name}: key {key!r} appears more than once")
            seen.add(key)
            stamped.append(_Entry(record=rec, raw=rec.to_document_value()))

        try:
            snap = self._docstore.get_document(self.ref)
            data = dict(snap.data) if snap.exists else {}
            data[self.field] = [e.raw for e in stamped]
            self._docstore.set_document(self.ref, data)
        except Exception as e:
            logger.warning("%s: replace_all failed for %s: %s", self.name, self.ref.path, e)
            raise RemoteWriteFailed(f"Failed to save {self.name}", collection=self.name) from e

        with self._lock:
            self._generation += 1
            self._entries = stamped
            self._sort()
            self._loaded = True
            return [e.record for e in self._entries]
