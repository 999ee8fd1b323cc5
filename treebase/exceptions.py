"""Exception taxonomy for treebase.

Defines a small hierarchy of exceptions raised by the collection store when
callers reference unknown items or hand in payloads that cannot be applied.
Routine interaction outcomes (self moves, cyclic moves) are not exceptions;
the store logs them and leaves the collection unchanged.

All exceptions accept a human-readable message. ``str(exception)`` returns the
message unchanged.
"""

from __future__ import annotations


class TreebaseError(Exception):
    """Base exception for treebase errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(TreebaseError):
    """Raised when input payloads or options fail validation."""


class NotFoundError(TreebaseError):
    """Raised when a requested item does not exist."""


class ConflictError(TreebaseError):
    """Raised when an operation conflicts with current state (e.g., taken id)."""
