"""Typed error taxonomy for the reconciliation core.

The orchestrator converts every subclass of :class:`ReconciliationError`
into a user-facing outcome. Anything else (I/O failures, corrupted
workbooks) propagates to the caller untouched.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for expected business outcomes of the core."""


class ValidationError(ReconciliationError, ValueError):
    """Raised when caller-supplied input violates a precondition."""


class InvalidTransitionError(ReconciliationError):
    """Raised when a record is not in the state an operation requires."""


class OperationInProgressError(InvalidTransitionError):
    """Raised when another operation on the same subject is still running."""


class ApplyFailedError(ReconciliationError):
    """Raised when an approved correction could not be written.

    The status change that triggered the write has been rolled back, so the
    record is still pending and the operation can be retried.
    """


class NotFoundError(ReconciliationError):
    """Raised when a subject, record, or ledger entry does not exist."""


class SchemaMismatchError(RuntimeError):
    """Raised when the configured schema version does not match the code."""


__all__ = [
    "ReconciliationError",
    "ValidationError",
    "InvalidTransitionError",
    "OperationInProgressError",
    "ApplyFailedError",
    "NotFoundError",
    "SchemaMismatchError",
]
