"""Workflow orchestrator: one user action in, one outcome out.

Each public function validates input, drives the calculator, record store,
state machine, or correction engine, and converts the typed errors of the
core into a :class:`WorkflowOutcome`. Only infrastructure failures (the
workbook cannot be read or written) escape as exceptions.

A subject may only have one operation in flight. A second invocation for the
same subject is rejected immediately instead of waiting its turn.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterator, Optional

from . import correction, log, record_store, state_machine
from .calculator import compute_variance
from .constants import ReconciliationStatus
from .correction import CorrectionResult
from .exceptions import (
    ApplyFailedError,
    InvalidTransitionError,
    NotFoundError,
    OperationInProgressError,
    ReconciliationError,
    ValidationError,
)
from .record_store import ReconciliationRecord
from .runtime import RuntimeContext
from .subjects import SubjectRef, get_subject


class OutcomeKind(str, Enum):
    """User-facing classification of a workflow result."""

    OK = "ok"
    VALIDATION = "validation"
    INVALID_TRANSITION = "invalid_transition"
    APPLY_FAILED = "apply_failed"
    NOT_FOUND = "not_found"


ALREADY_PROCESSED_MESSAGE = "This item was already processed."
IN_PROGRESS_MESSAGE = "This item is being processed; try again shortly."
APPLY_FAILED_MESSAGE = "The correction could not be applied; the item is still pending and can be retried."
NOT_FOUND_MESSAGE = "The requested item does not exist."


@dataclass(frozen=True)
class WorkflowOutcome:
    """Result of a single orchestrated action.

    ``record`` is always a fresh read taken after the action finished (or
    failed), or ``None`` when there is no record to show.
    """

    kind: OutcomeKind
    message: str
    record: Optional[ReconciliationRecord] = None
    correction: Optional[CorrectionResult] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK


@dataclass(frozen=True)
class SubmitCommand:
    """User intent for submitting an observed value for a subject."""

    subject: SubjectRef
    observed_value: Decimal
    note: Optional[str] = None
    actor: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DecisionCommand:
    """User intent for approving, rejecting, or withdrawing a record."""

    record_id: str
    note: Optional[str] = None
    actor: Optional[str] = None
    timestamp: Optional[datetime] = None


@contextmanager
def _claim(context: RuntimeContext, subject: SubjectRef) -> Iterator[None]:
    key = str(subject)
    with context.registry_lock:
        if key in context.in_flight:
            log.warning("Rejected concurrent operation on %s", subject)
            raise OperationInProgressError(f"An operation on {subject} is already in progress")
        context.in_flight.add(key)
    try:
        yield
    finally:
        with context.registry_lock:
            context.in_flight.discard(key)


def _message_for(error: ReconciliationError) -> tuple[OutcomeKind, str]:
    if isinstance(error, ValidationError):
        return OutcomeKind.VALIDATION, str(error)
    if isinstance(error, OperationInProgressError):
        return OutcomeKind.INVALID_TRANSITION, IN_PROGRESS_MESSAGE
    if isinstance(error, InvalidTransitionError):
        return OutcomeKind.INVALID_TRANSITION, ALREADY_PROCESSED_MESSAGE
    if isinstance(error, ApplyFailedError):
        return OutcomeKind.APPLY_FAILED, APPLY_FAILED_MESSAGE
    if isinstance(error, NotFoundError):
        return OutcomeKind.NOT_FOUND, NOT_FOUND_MESSAGE
    raise error


def _fresh(context: RuntimeContext, record_id: Optional[str]) -> Optional[ReconciliationRecord]:
    if record_id is None:
        return None
    try:
        return record_store.get(context, record_id)
    except NotFoundError:
        return None


def _failure(context: RuntimeContext, error: ReconciliationError, *, action: str, record_id: Optional[str] = None) -> WorkflowOutcome:
    kind, message = _message_for(error)
    log.warning("%s failed (%s): %s", action, kind.value, error)
    return WorkflowOutcome(kind=kind, message=message, record=_fresh(context, record_id))


def submit(context: RuntimeContext, command: SubmitCommand) -> WorkflowOutcome:
    """Snapshot the subject's recorded value and store a pending record."""

    try:
        with _claim(context, command.subject):
            if not command.observed_value.is_finite():
                raise ValidationError("Observed value must be a finite number")
            if command.observed_value < Decimal("0"):
                raise ValidationError("Observed value must be zero or positive")
            snapshot = get_subject(context, command.subject)
            variance = compute_variance(snapshot.value, command.observed_value)
            record = record_store.create(
                context,
                command.subject,
                snapshot.value,
                command.observed_value,
                note=command.note,
                actor=command.actor,
                timestamp=command.timestamp,
            )
    except ReconciliationError as error:
        return _failure(context, error, action="submit")

    return WorkflowOutcome(
        kind=OutcomeKind.OK,
        message=f"Recorded. Variance: {variance:+}",
        record=record,
    )


def _decide(context: RuntimeContext, command: DecisionCommand, target: ReconciliationStatus) -> WorkflowOutcome:
    action = "approve" if target is ReconciliationStatus.APPROVED else "reject"
    try:
        subject = record_store.get(context, command.record_id).subject
        with _claim(context, subject):
            record, applied = state_machine.transition(
                context,
                command.record_id,
                target,
                command.note,
                actor=command.actor,
                timestamp=command.timestamp,
            )
    except ReconciliationError as error:
        return _failure(context, error, action=action, record_id=command.record_id)

    if target is ReconciliationStatus.REJECTED:
        message = "Rejected; no change was made."
    elif applied is not None and applied.corrected:
        message = f"Approved; {record.subject} adjusted from {applied.before} to {applied.after}."
    else:
        message = "Approved; no adjustment was needed."
    return WorkflowOutcome(kind=OutcomeKind.OK, message=message, record=record, correction=applied)


def approve(context: RuntimeContext, command: DecisionCommand) -> WorkflowOutcome:
    """Approve a pending record and apply its variance to the subject."""

    return _decide(context, command, ReconciliationStatus.APPROVED)


def reject(context: RuntimeContext, command: DecisionCommand) -> WorkflowOutcome:
    """Reject a pending record; a note is required."""

    return _decide(context, command, ReconciliationStatus.REJECTED)


def withdraw(context: RuntimeContext, command: DecisionCommand) -> WorkflowOutcome:
    """Delete a record that has not been resolved yet."""

    try:
        subject = record_store.get(context, command.record_id).subject
        with _claim(context, subject):
            record_store.delete(context, command.record_id)
    except ReconciliationError as error:
        return _failure(context, error, action="withdraw", record_id=command.record_id)
    return WorkflowOutcome(kind=OutcomeKind.OK, message=f"Record {command.record_id} deleted.")


def reconcile(
    context: RuntimeContext,
    subject: SubjectRef,
    *,
    actor: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> WorkflowOutcome:
    """Heal the subject's recorded value from its ledger, if it drifted."""

    try:
        with _claim(context, subject):
            result = correction.reconcile(context, subject, actor=actor, timestamp=timestamp)
    except ReconciliationError as error:
        return _failure(context, error, action="reconcile")

    message = (
        f"Corrected {subject} from {result.before} to {result.after}."
        if result.corrected
        else f"{subject} already matches its ledger."
    )
    if result.overpaid:
        message += " Warning: payments exceed the total (overpaid)."
    return WorkflowOutcome(kind=OutcomeKind.OK, message=message, correction=result)
