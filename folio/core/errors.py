"""Exception hierarchy for the portfolio console."""

from __future__ import annotations


class FolioError(Exception):
    """Base exception for all console errors."""


class ValidationFailed(FolioError):
    """A candidate record was rejected before any remote call was made."""

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class DuplicateKey(ValidationFailed):
    """The record's key (or unique name) already exists in the mirror."""


class NotFound(FolioError):
    """No record with the given key exists in the mirror."""

    def __init__(self, message: str, *, key: object = None) -> None:
        self.key = key
        super().__init__(message)


class RemoteError(FolioError):
    """A document-store or object-storage call failed."""

    def __init__(self, message: str, *, collection: str = "") -> None:
        self.collection = collection
        super().__init__(message)


class LoadFailed(RemoteError):
    """Fetching a collection document failed; the mirror was left untouched."""


class RemoteWriteFailed(RemoteError):
    """Writing to a collection document failed; the mirror was left untouched."""
