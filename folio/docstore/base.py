from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Protocol


@dataclass(frozen=True)
class DocumentRef:
    """Address of one document: `collection/doc_id`."""

    collection: str
    doc_id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.doc_id}"


@dataclass(frozen=True)
class DocumentSnapshot:
    exists: bool
    data: Dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol):
    """
    Minimal document-store interface consumed by collection stores.

    Array mutations are value-based: an element is added only if no equal element exists,
    and removed by exact value match, never by index.
    """

    def get_document(self, ref: DocumentRef) -> DocumentSnapshot:
        """Fetch a document; `exists=False` (and empty data) when it is missing."""

    def array_union(self, ref: DocumentRef, field: str, value: Any) -> None:
        """Append `value` to the array `field` unless an equal element is present. Creates the document."""

    def array_remove(self, ref: DocumentRef, field: str, value: Any) -> None:
        """Remove every element equal to `value` from the array `field`. Missing document is a no-op."""

    def array_replace(self, ref: DocumentRef, field: str, old: Any, new: Any) -> None:
        """Remove elements equal to `old` and append `new` as one write."""

    def set_document(self, ref: DocumentRef, data: Dict[str, Any]) -> None:
        """Overwrite the whole document."""


def replace_in_array(items: Any, old: Any, new: Any) -> list:
    """Pure helper shared by backends that mutate arrays in Python."""
    out = [x for x in (items if isinstance(items, list) else []) if x != old]
    if new not in out:
        out.append(new)
    return out
