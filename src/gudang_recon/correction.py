"""Correction engine.

Two jobs live here:

* :func:`reconcile` heals a denormalized field (a debt's paid amount, a stock
  item's quantity) from the ledger it summarizes. It only ever moves the field
  to the ledger sum and is idempotent.
* :func:`apply_record` writes the effect of an approved reconciliation record
  onto its subject. It is the only path by which a reconciliation record
  changes a subject.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from . import audit, data_manager, log
from .calculator import ZERO, compute_remaining, derive_debt_status, sum_amounts
from .constants import DEBT_ADJUSTMENT_PREFIX, OPNAME_ADJUSTMENT_PREFIX, MovementType, SheetName, SubjectKind
from .exceptions import ValidationError
from .record_store import ReconciliationRecord
from .runtime import RuntimeContext, allocate_id, resolve_timestamp
from .subjects import SubjectRef, get_subject, list_movements, put_subject, record_movement


@dataclass(frozen=True)
class CorrectionResult:
    """Outcome of a corrective write.

    ``before`` and ``after`` are the subject's reconciled value (stock
    quantity or debt paid amount) around the write; they are equal when
    nothing needed changing.
    """

    subject: SubjectRef
    corrected: bool
    before: Decimal
    after: Decimal
    overpaid: bool = False


def ledger_total(context: RuntimeContext, subject: SubjectRef) -> Decimal:
    """Return the trusted sum the subject's recorded value should equal.

    For a debt this is the sum of its installments, approved corrections
    included; for a stock item it is the net of its inbound and outbound
    movements.
    """

    if subject.kind is SubjectKind.DEBT:
        return sum_amounts(
            installment.amount
            for installment in data_manager.iter_installments(context.workbook)
            if installment.debt_id == subject.key
        )

    net = ZERO
    for movement in list_movements(context, subject):
        if movement.movement_type == MovementType.IN.value:
            net += movement.quantity
        elif movement.movement_type == MovementType.OUT.value:
            net -= movement.quantity
    return net


def reconcile(
    context: RuntimeContext,
    subject: SubjectRef,
    *,
    actor: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> CorrectionResult:
    """Bring the subject's denormalized fields in line with its ledger.

    Calling this twice in a row with no ledger writes in between yields
    ``corrected=True`` (at most) once and ``corrected=False`` afterwards.

    Raises:
        NotFoundError: If the subject does not exist.
    """

    moment = resolve_timestamp(timestamp)
    with context.lock:
        snapshot = get_subject(context, subject)
        trusted = ledger_total(context, subject)

        if subject.kind is SubjectKind.DEBT:
            result, from_status, to_status = _reconcile_debt(context, snapshot.row, trusted, moment)
        else:
            result, from_status, to_status = _reconcile_stock(context, subject, snapshot.value, trusted)

    if not result.corrected:
        log.debug("%s already consistent with its ledger (%s)", subject, trusted)
        return result

    log.warning("Corrected %s from %s to %s", subject, result.before, result.after)
    if result.overpaid:
        log.warning("%s is overpaid: ledger sum exceeds its total", subject)
    audit.emit(
        context,
        audit.AuditEvent(
            subject=subject,
            action=audit.ACTION_CORRECTION,
            from_status=from_status,
            to_status=to_status,
            actor=actor,
            timestamp=moment,
            detail=f"{result.before} -> {result.after}",
        ),
    )
    return result


def _reconcile_debt(
    context: RuntimeContext,
    debt: data_manager.DebtRow,
    trusted: Decimal,
    moment: datetime,
) -> tuple[CorrectionResult, Optional[str], Optional[str]]:
    subject = SubjectRef.debt(debt.debt_id)
    balance = compute_remaining(debt.total_amount, trusted)
    status = derive_debt_status(debt.total_amount, trusted)
    consistent = (
        debt.paid_amount == trusted
        and debt.remaining_amount == balance.remaining
        and debt.status == status.value
    )
    if consistent:
        return CorrectionResult(subject, False, debt.paid_amount, debt.paid_amount, balance.overpaid), debt.status, debt.status

    put_subject(
        context,
        subject,
        {
            "PaidAmount": trusted,
            "RemainingAmount": balance.remaining,
            "Status": status.value,
            "UpdatedAt": moment.isoformat(),
        },
    )
    return CorrectionResult(subject, True, debt.paid_amount, trusted, balance.overpaid), debt.status, status.value


def _reconcile_stock(
    context: RuntimeContext,
    subject: SubjectRef,
    quantity: Decimal,
    trusted: Decimal,
) -> tuple[CorrectionResult, Optional[str], Optional[str]]:
    if quantity == trusted:
        return CorrectionResult(subject, False, quantity, quantity), None, None
    put_subject(context, subject, {"Quantity": trusted})
    return CorrectionResult(subject, True, quantity, trusted), None, None


def adjustment_note(record_id: str) -> str:
    return f"{OPNAME_ADJUSTMENT_PREFIX}{record_id} (Approved)"


def debt_adjustment_note(record_id: str) -> str:
    return f"{DEBT_ADJUSTMENT_PREFIX}{record_id} (Approved)"


def is_debt_adjustment(installment: data_manager.InstallmentRow) -> bool:
    """Tell approved debt corrections apart from cash installments."""

    return (installment.notes or "").startswith(DEBT_ADJUSTMENT_PREFIX)


def apply_record(
    context: RuntimeContext,
    record: ReconciliationRecord,
    *,
    timestamp: Optional[datetime] = None,
) -> CorrectionResult:
    """Write an approved record's variance onto its subject.

    The variance is added to the subject's current value, so movements that
    happened between submission and approval are preserved. Every check runs
    before the first write.

    Raises:
        NotFoundError: If the subject no longer exists.
        ValidationError: If applying the variance would drive the subject's
            value below zero.
    """

    moment = resolve_timestamp(timestamp)
    variance = record.variance
    with context.lock:
        snapshot = get_subject(context, record.subject)
        before = snapshot.value
        if variance == ZERO:
            log.info("Record '%s' has no variance; %s left unchanged", record.record_id, record.subject)
            return CorrectionResult(record.subject, False, before, before)

        after = before + variance
        if after < ZERO:
            log.error(
                "Applying record '%s' would make %s negative (%s + %s)",
                record.record_id,
                record.subject,
                before,
                variance,
            )
            raise ValidationError(f"Applying the variance would make {record.subject} negative ({after})")

        if record.subject.kind is SubjectKind.STOCK:
            return _apply_stock(context, record, before, after, moment)
        return _apply_debt(context, record, snapshot.row, after, moment)


def _apply_stock(
    context: RuntimeContext,
    record: ReconciliationRecord,
    before: Decimal,
    after: Decimal,
    moment: datetime,
) -> CorrectionResult:
    marker = f"{OPNAME_ADJUSTMENT_PREFIX}{record.record_id}"
    if any((movement.notes or "").startswith(marker) for movement in list_movements(context, record.subject)):
        log.warning("Adjustment for record '%s' already recorded; skipping", record.record_id)
        return CorrectionResult(record.subject, False, before, before)

    put_subject(context, record.subject, {"Quantity": after})
    try:
        record_movement(
            context,
            record.subject,
            movement_type=MovementType.IN if record.variance > ZERO else MovementType.OUT,
            quantity=abs(record.variance),
            notes=adjustment_note(record.record_id),
            timestamp=moment,
        )
    except Exception:
        put_subject(context, record.subject, {"Quantity": before})
        raise
    log.info("Stock update for %s: %s + (%s) = %s", record.subject, before, record.variance, after)
    return CorrectionResult(record.subject, True, before, after)


def _apply_debt(
    context: RuntimeContext,
    record: ReconciliationRecord,
    debt: data_manager.DebtRow,
    after: Decimal,
    moment: datetime,
) -> CorrectionResult:
    marker = f"{DEBT_ADJUSTMENT_PREFIX}{record.record_id}"
    sheet = SheetName.INSTALLMENTS.value
    if any(
        installment.debt_id == debt.debt_id and (installment.notes or "").startswith(marker)
        for installment in data_manager.iter_installments(context.workbook)
    ):
        log.warning("Correction for record '%s' already recorded; skipping", record.record_id)
        return CorrectionResult(record.subject, False, debt.paid_amount, debt.paid_amount)

    balance = compute_remaining(debt.total_amount, after)
    status = derive_debt_status(debt.total_amount, after)
    # The signed variance goes into the installment ledger so reconcile keeps it.
    adjustment = data_manager.InstallmentRow(
        installment_id=allocate_id(context, sheet, "InstallmentID", prefix="I", when=moment),
        debt_id=debt.debt_id,
        paid_on_iso=moment.isoformat(),
        amount=record.variance,
        cash_account_id="",
        notes=debt_adjustment_note(record.record_id),
    )
    data_manager.append_installment(context.workbook, adjustment)
    try:
        put_subject(
            context,
            record.subject,
            {
                "PaidAmount": after,
                "RemainingAmount": balance.remaining,
                "Status": status.value,
                "UpdatedAt": moment.isoformat(),
            },
        )
    except Exception:
        data_manager.delete_row(context.workbook, sheet, {"InstallmentID": adjustment.installment_id})
        raise
    log.info("Debt update for %s: %s + (%s) = %s", record.subject, debt.paid_amount, record.variance, after)
    if balance.overpaid:
        log.warning("%s is overpaid after applying record '%s'", record.subject, record.record_id)
    return CorrectionResult(record.subject, True, debt.paid_amount, after, balance.overpaid)
