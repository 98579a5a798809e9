"""Error types and store-failure classification."""

from __future__ import annotations


class TaskTreeError(Exception):
    """Base class for tasktree domain errors."""


class ValidationError(TaskTreeError):
    """A raw record could not be turned into a model object."""


class InvalidRecord(ValidationError):
    """A task or project record lacks a required field (``id`` or ``title``)."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class StoreError(TaskTreeError):
    """A subscription to the document store failed or disconnected."""

    def __init__(self, collection: str, message: str) -> None:
        super().__init__(f"{collection}: {message}")
        self.collection = collection
        self.message = message

    @property
    def transient(self) -> bool:
        return looks_like_transient_store_error(self.message)


class StructuralError(TaskTreeError):
    """Traversal reached a node twice or exceeded the depth guard."""


class InvalidTransition(TaskTreeError, ValueError):
    """A status change that the task workflow does not allow."""


TRANSIENT_STORE_PATTERNS: tuple[str, ...] = (
    "unavailable",
    "deadline exceeded",
    "deadline-exceeded",
    "resource exhausted",
    "resource-exhausted",
    "network",
    "timeout",
    "timed out",
    "disconnect",
    "connection reset",
    "econnreset",
    "etimedout",
    "503",
    "504",
)

PERMANENT_STORE_PATTERNS: tuple[str, ...] = (
    "permission denied",
    "permission-denied",
    "unauthenticated",
    "not found",
    "not-found",
    "invalid argument",
)


def _contains_any(text: str, patterns: tuple[str, ...]) -> bool:
    lower = text.lower()
    return any(pattern in lower for pattern in patterns)


def looks_like_permanent_store_error(text: str) -> bool:
    """Return ``True`` for failures a resubscribe cannot fix."""
    if not text:
        return False
    return _contains_any(text, PERMANENT_STORE_PATTERNS)


def looks_like_transient_store_error(text: str) -> bool:
    """Return ``True`` when a subscription failure is worth retrying."""
    if not text:
        return False
    if looks_like_permanent_store_error(text):
        return False
    return _contains_any(text, TRANSIENT_STORE_PATTERNS)
