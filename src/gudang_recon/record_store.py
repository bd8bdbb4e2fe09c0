"""Reconciliation record store.

Persists reconciliation records on the ``Reconciliations`` sheet. Status
changes and deletions are conditional writes taken under the runtime context
lock, so two callers racing on the same pending record can never both
succeed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from . import data_manager, log
from .calculator import compute_variance
from .constants import TERMINAL_STATUSES, ReconciliationStatus, SheetName, SubjectKind
from .exceptions import InvalidTransitionError, NotFoundError, ValidationError
from .runtime import RuntimeContext, allocate_id, resolve_timestamp
from .subjects import SubjectRef


SHEET = SheetName.RECONCILIATIONS.value
KEY_COLUMN = "RecordID"


@dataclass(frozen=True)
class ReconciliationRecord:
    """A submitted observation awaiting, or having received, a decision."""

    record_id: str
    subject: SubjectRef
    authoritative_value: Decimal
    observed_value: Decimal
    status: ReconciliationStatus
    note: Optional[str]
    created_at: datetime
    resolved_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    resolved_by: Optional[str] = None

    @property
    def variance(self) -> Decimal:
        return compute_variance(self.authoritative_value, self.observed_value)

    @property
    def is_pending(self) -> bool:
        return self.status is ReconciliationStatus.PENDING

    @classmethod
    def from_row(cls, row: data_manager.ReconciliationRow) -> ReconciliationRecord:
        return cls(
            record_id=row.record_id,
            subject=SubjectRef(SubjectKind(row.subject_kind), row.subject_key),
            authoritative_value=row.authoritative_value,
            observed_value=row.observed_value,
            status=ReconciliationStatus(row.status),
            note=row.note,
            created_at=resolve_timestamp(datetime.fromisoformat(row.created_at_iso)),
            resolved_at=resolve_timestamp(datetime.fromisoformat(row.resolved_at_iso)) if row.resolved_at_iso else None,
            submitted_by=row.submitted_by,
            resolved_by=row.resolved_by,
        )


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-date window applied to ``created_at``."""

    start: Optional[date] = None
    end: Optional[date] = None

    def __contains__(self, moment: datetime) -> bool:
        day = moment.date()
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


@dataclass(frozen=True)
class RecordFilter:
    """Optional criteria for :func:`list_by_filter`; ``None`` means any."""

    status: Optional[ReconciliationStatus] = None
    subject_kind: Optional[SubjectKind] = None
    date_range: Optional[DateRange] = None
    search: Optional[str] = None

    def matches(self, record: ReconciliationRecord) -> bool:
        if self.status is not None and record.status is not self.status:
            return False
        if self.subject_kind is not None and record.subject.kind is not self.subject_kind:
            return False
        if self.date_range is not None and record.created_at not in self.date_range:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = [record.subject.key, record.note or "", record.status.value]
            if not any(needle in text.lower() for text in haystack):
                return False
        return True


@dataclass(frozen=True)
class Page:
    """One page of records plus the totals needed to render pagination."""

    items: List[ReconciliationRecord]
    page: int
    page_size: int
    total_records: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_records / self.page_size)


def create(
    context: RuntimeContext,
    subject: SubjectRef,
    authoritative_value: Decimal,
    observed_value: Decimal,
    *,
    note: Optional[str] = None,
    actor: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> ReconciliationRecord:
    """Persist a new pending record.

    ``authoritative_value`` is stored as given and never re-read afterwards;
    it is the snapshot the approver will judge.

    Raises:
        ValidationError: If ``observed_value`` is not a finite number or is
            negative.
    """

    if not observed_value.is_finite():
        log.error("Observed value validation failed for %s: %s", subject, observed_value)
        raise ValidationError("Observed value must be a finite number")
    if observed_value < Decimal("0"):
        log.error("Observed value validation failed for %s: %s", subject, observed_value)
        raise ValidationError("Observed value must be zero or positive")

    moment = resolve_timestamp(timestamp)
    with context.lock:
        record_id = allocate_id(context, SHEET, KEY_COLUMN, prefix="R", when=moment)
        row = data_manager.ReconciliationRow(
            record_id=record_id,
            subject_kind=subject.kind.value,
            subject_key=subject.key,
            authoritative_value=authoritative_value,
            observed_value=observed_value,
            status=ReconciliationStatus.PENDING.value,
            note=note or None,
            created_at_iso=moment.isoformat(),
            resolved_at_iso=None,
            submitted_by=actor,
            resolved_by=None,
        )
        data_manager.append_reconciliation(context.workbook, row)

    record = ReconciliationRecord.from_row(row)
    log.info(
        "Created reconciliation record '%s' for %s (system=%s, observed=%s, variance=%s)",
        record.record_id,
        subject,
        authoritative_value,
        observed_value,
        record.variance,
    )
    return record


def get(context: RuntimeContext, record_id: str) -> ReconciliationRecord:
    """Read one record fresh from the workbook.

    Raises:
        NotFoundError: If no record has ``record_id``.
    """

    raw = data_manager.read_row(context.workbook, SHEET, {KEY_COLUMN: record_id})
    if raw is None:
        log.warning("Reconciliation record lookup failed for id '%s'", record_id)
        raise NotFoundError(f"Unknown reconciliation record: {record_id}")
    return ReconciliationRecord.from_row(data_manager.deserialize_reconciliation(raw))


def list_by_filter(
    context: RuntimeContext,
    record_filter: Optional[RecordFilter] = None,
    *,
    page: int = 1,
    page_size: Optional[int] = None,
) -> Page:
    """Return one page of records matching ``record_filter``.

    Records are ordered by ``created_at`` descending, ties broken by
    ``record_id`` descending, so repeated calls page through a stable order.

    Raises:
        ValidationError: If ``page`` or ``page_size`` is below one.
    """

    page_size = page_size if page_size is not None else context.settings.page_size
    if page < 1 or page_size < 1:
        raise ValidationError("Page and page size must be at least 1")

    record_filter = record_filter or RecordFilter()
    matching = [
        record
        for record in (ReconciliationRecord.from_row(row) for row in data_manager.iter_reconciliations(context.workbook))
        if record_filter.matches(record)
    ]
    matching.sort(key=lambda record: (record.created_at, record.record_id), reverse=True)

    offset = (page - 1) * page_size
    return Page(
        items=matching[offset:offset + page_size],
        page=page,
        page_size=page_size,
        total_records=len(matching),
    )


def update_status(
    context: RuntimeContext,
    record_id: str,
    status: ReconciliationStatus,
    note: Optional[str] = None,
    *,
    actor: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> ReconciliationRecord:
    """Move a pending record to a terminal status.

    The write only happens if the record is still pending at the moment of
    writing; exactly one of several concurrent callers wins.

    Raises:
        ValidationError: If ``status`` is not terminal, or rejecting without
            a note.
        NotFoundError: If the record does not exist.
        InvalidTransitionError: If the record has already left ``Pending``.
    """

    if status not in TERMINAL_STATUSES:
        raise ValidationError(f"Cannot transition a record to {status.value}")
    if status is ReconciliationStatus.REJECTED and not (note and note.strip()):
        log.error("Rejection of record '%s' attempted without a note", record_id)
        raise ValidationError("A note is required when rejecting a record")

    moment = resolve_timestamp(timestamp)
    field_values = {
        "Status": status.value,
        "ResolvedAt": moment.isoformat(),
        "ResolvedBy": actor,
    }
    if note and note.strip():
        field_values["Note"] = note.strip()

    with context.lock:
        current = get(context, record_id)
        written = data_manager.compare_and_update(
            context.workbook,
            SHEET,
            {KEY_COLUMN: record_id},
            expected={"Status": ReconciliationStatus.PENDING.value},
            field_values=field_values,
        )
        if not written:
            log.warning(
                "Rejected transition of record '%s' to %s: already %s",
                record_id,
                status.value,
                current.status.value,
            )
            raise InvalidTransitionError(f"Record '{record_id}' is already {current.status.value}")
        updated = get(context, record_id)

    log.info("Record '%s' moved to %s by %s", record_id, status.value, actor or "unknown")
    return updated


def revert_to_pending(context: RuntimeContext, previous: ReconciliationRecord, applied_status: ReconciliationStatus) -> None:
    """Undo a status change made by :func:`update_status`.

    ``previous`` is the pending record as it was before the transition; its
    note is restored verbatim. The revert is itself conditional on the record
    still carrying ``applied_status``.

    Raises:
        InvalidTransitionError: If the record no longer carries
            ``applied_status``.
    """

    with context.lock:
        written = data_manager.compare_and_update(
            context.workbook,
            SHEET,
            {KEY_COLUMN: previous.record_id},
            expected={"Status": applied_status.value},
            field_values={
                "Status": ReconciliationStatus.PENDING.value,
                "Note": previous.note,
                "ResolvedAt": None,
                "ResolvedBy": None,
            },
        )
    if not written:
        raise InvalidTransitionError(f"Record '{previous.record_id}' is no longer {applied_status.value}")
    log.warning("Record '%s' reverted from %s to Pending", previous.record_id, applied_status.value)


def delete(context: RuntimeContext, record_id: str) -> None:
    """Delete a record that is still pending.

    Raises:
        NotFoundError: If the record does not exist.
        InvalidTransitionError: If the record has already been resolved.
    """

    with context.lock:
        record = get(context, record_id)
        if not record.is_pending:
            log.warning("Refused to delete record '%s' in status %s", record_id, record.status.value)
            raise InvalidTransitionError(f"Record '{record_id}' is already {record.status.value}")
        data_manager.delete_row(context.workbook, SHEET, {KEY_COLUMN: record_id})
    log.info("Deleted pending record '%s'", record_id)
