"""Approval state machine for reconciliation records.

``Pending`` is the only state with outgoing transitions; ``Approved`` and
``Rejected`` are terminal. An approval is the status write plus the
correction apply step, taken together under the context lock: if the apply
step fails, the status write is reverted and the record stays pending.
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional

from . import audit, log, record_store
from .constants import TERMINAL_STATUSES, ReconciliationStatus
from .correction import CorrectionResult, apply_record
from .exceptions import ApplyFailedError, InvalidTransitionError, ValidationError
from .record_store import ReconciliationRecord
from .runtime import RuntimeContext, resolve_timestamp


TRANSITIONS: Mapping[ReconciliationStatus, frozenset[ReconciliationStatus]] = {
    ReconciliationStatus.PENDING: frozenset({ReconciliationStatus.APPROVED, ReconciliationStatus.REJECTED}),
    ReconciliationStatus.APPROVED: frozenset(),
    ReconciliationStatus.REJECTED: frozenset(),
}


def can_transition(current: ReconciliationStatus, target: ReconciliationStatus) -> bool:
    """Return whether ``current -> target`` is a legal transition."""

    return target in TRANSITIONS[current]


def transition(
    context: RuntimeContext,
    record_id: str,
    target: ReconciliationStatus,
    note: Optional[str] = None,
    *,
    actor: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> tuple[ReconciliationRecord, Optional[CorrectionResult]]:
    """Resolve a pending record as ``target``.

    Returns:
        tuple[ReconciliationRecord, CorrectionResult | None]: The resolved
            record and, for approvals, the result of applying it.

    Raises:
        ValidationError: For a non-terminal target or a rejection without a
            note.
        NotFoundError: If the record does not exist.
        InvalidTransitionError: If the record is not pending.
        ApplyFailedError: If the approved correction could not be written.
            The record has been reverted to pending.
    """

    moment = resolve_timestamp(timestamp)
    correction: Optional[CorrectionResult] = None

    if target not in TERMINAL_STATUSES:
        raise ValidationError(f"Cannot transition a record to {target.value}")

    with context.lock:
        previous = record_store.get(context, record_id)
        if not can_transition(previous.status, target):
            log.warning("Illegal transition %s -> %s for record '%s'", previous.status.value, target.value, record_id)
            raise InvalidTransitionError(f"Record '{record_id}' is already {previous.status.value}")

        resolved = record_store.update_status(context, record_id, target, note, actor=actor, timestamp=moment)

        if target is ReconciliationStatus.APPROVED:
            try:
                correction = apply_record(context, resolved, timestamp=moment)
            except Exception as exc:
                log.error("Applying record '%s' failed: %s; reverting to Pending", record_id, exc)
                record_store.revert_to_pending(context, previous, target)
                raise ApplyFailedError(f"Could not apply record '{record_id}': {exc}") from exc

    log.info("Record '%s' for %s resolved as %s", record_id, resolved.subject, target.value)
    audit.emit(
        context,
        audit.AuditEvent(
            subject=resolved.subject,
            action=audit.ACTION_TRANSITION,
            from_status=previous.status.value,
            to_status=resolved.status.value,
            actor=actor,
            timestamp=moment,
            detail=resolved.note,
        ),
    )
    return resolved, correction
