"""Error types shared by the catalog, scoring and search layers."""

from __future__ import annotations


class TunecanonError(Exception):
    """Base class for project errors."""


class InputError(TunecanonError, ValueError):
    """Rejected caller input: short query, malformed song record."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [message])


class CollaboratorUnavailable(TunecanonError, RuntimeError):
    """An optional collaborator (index, cache) cannot be reached."""


class InvariantViolation(TunecanonError, AssertionError):
    """A programming error upstream, e.g. selecting from an empty group."""


class DataIntegrityWarning(UserWarning):
    """Category for logged integrity gaps; handled with a safe default, never raised."""


# passed as ``extra`` so integrity gaps can be filtered from other warnings
INTEGRITY_LOG_EXTRA = {"category": DataIntegrityWarning.__name__}


__all__ = [
    "CollaboratorUnavailable",
    "DataIntegrityWarning",
    "INTEGRITY_LOG_EXTRA",
    "InputError",
    "InvariantViolation",
    "TunecanonError",
]
