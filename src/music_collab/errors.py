"""Domain error taxonomy shared by the engine, stores and API."""

from __future__ import annotations


class NotFoundError(KeyError):
    """Raised when a referenced project, track or version does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages human-readable.
        return str(self.args[0]) if self.args else "not found"


class ForbiddenError(PermissionError):
    """Raised when the caller lacks the role an operation requires."""


class MalformedInputError(ValueError):
    """Raised when numbers are out of range or not finite."""


class InvalidOperationError(ValueError):
    """Raised when a request is well-formed but would break an invariant."""


class PersistenceError(RuntimeError):
    """Raised when the durable store rejects a write."""
