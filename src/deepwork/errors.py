# src/deepwork/errors.py

"""
Error taxonomy shared by every layer.

All errors derive from DeepWorkError so connectors can catch one type and show
the message. Nothing in the core retries; callers decide.
"""

from __future__ import annotations


class DeepWorkError(RuntimeError):
    """Base class for all domain/storage failures."""


class NotFound(DeepWorkError):
    """A referenced id is absent from its collection."""

    def __init__(self, message: str, *, collection: str | None = None, record_id: str | None = None):
        super().__init__(message)
        self.collection = collection
        self.record_id = record_id


class Conflict(DeepWorkError):
    """An invariant would be violated (e.g. two focusing tasks)."""

    def __init__(self, message: str, *, task_id: str | None = None):
        super().__init__(message)
        self.task_id = task_id


class InvalidState(DeepWorkError):
    """The operation is illegal for the task's current state."""

    def __init__(self, message: str, *, task_id: str | None = None, state: str | None = None):
        super().__init__(message)
        self.task_id = task_id
        self.state = state


class InvalidArgument(DeepWorkError, ValueError):
    """Out-of-range or malformed input."""


class VersionMismatch(DeepWorkError):
    """Backup document was written by an incompatible format version."""

    def __init__(self, message: str, *, expected: str, actual: object):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class StorageFailure(DeepWorkError):
    """The underlying durable storage failed; the transaction was rolled back."""
