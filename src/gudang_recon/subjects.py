"""Data-access interface for the entities being reconciled.

A subject is either a stock item (a product held at a branch) or a debt. The
reconciliation core only ever touches subjects through :func:`get_subject`
and :func:`put_subject`, which read and write the current workbook state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from . import data_manager, log
from .constants import MovementType, SheetName, SubjectKind
from .exceptions import NotFoundError, ValidationError
from .runtime import RuntimeContext, allocate_id, resolve_timestamp


STOCK_KEY_SEPARATOR = "@"


@dataclass(frozen=True)
class SubjectRef:
    """Reference to a reconcilable entity."""

    kind: SubjectKind
    key: str

    @classmethod
    def stock(cls, product_id: str, branch_id: str) -> SubjectRef:
        if not product_id or not branch_id:
            raise ValidationError("Product and branch are both required")
        if STOCK_KEY_SEPARATOR in product_id or STOCK_KEY_SEPARATOR in branch_id:
            raise ValidationError(f"Identifiers may not contain '{STOCK_KEY_SEPARATOR}'")
        return cls(SubjectKind.STOCK, f"{product_id}{STOCK_KEY_SEPARATOR}{branch_id}")

    @classmethod
    def debt(cls, debt_id: str) -> SubjectRef:
        if not debt_id:
            raise ValidationError("Debt id is required")
        return cls(SubjectKind.DEBT, debt_id)

    @property
    def product_id(self) -> str:
        return self._stock_parts()[0]

    @property
    def branch_id(self) -> str:
        return self._stock_parts()[1]

    def _stock_parts(self) -> tuple[str, str]:
        if self.kind is not SubjectKind.STOCK:
            raise AttributeError(f"{self.kind.value} subjects have no product/branch")
        product_id, _, branch_id = self.key.partition(STOCK_KEY_SEPARATOR)
        return product_id, branch_id

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


@dataclass(frozen=True)
class SubjectSnapshot:
    """Current state of a subject as read from the workbook.

    ``value`` is the quantity reconciliation compares against: the recorded
    stock quantity, or the recorded paid amount of a debt.
    """

    ref: SubjectRef
    value: Decimal
    row: Any


def _criteria(ref: SubjectRef) -> tuple[str, Mapping[str, object]]:
    if ref.kind is SubjectKind.STOCK:
        return SheetName.STOCK.value, {"ProductID": ref.product_id, "BranchID": ref.branch_id}
    return SheetName.DEBTS.value, {"DebtID": ref.key}


def get_subject(context: RuntimeContext, ref: SubjectRef) -> SubjectSnapshot:
    """Read the current state of ``ref``.

    Raises:
        NotFoundError: If the subject does not exist.
    """

    sheet_name, criteria = _criteria(ref)
    raw = data_manager.read_row(context.workbook, sheet_name, criteria)
    if raw is None:
        log.warning("Subject lookup failed for %s", ref)
        raise NotFoundError(f"Unknown subject: {ref}")

    if ref.kind is SubjectKind.STOCK:
        stock = data_manager.deserialize_stock(raw)
        return SubjectSnapshot(ref=ref, value=stock.quantity, row=stock)
    debt = data_manager.deserialize_debt(raw)
    return SubjectSnapshot(ref=ref, value=debt.paid_amount, row=debt)


def put_subject(context: RuntimeContext, ref: SubjectRef, field_values: Mapping[str, Any]) -> None:
    """Write ``field_values`` onto the subject's row.

    Raises:
        NotFoundError: If the subject does not exist.
        KeyError: If a field name is not a column of the subject's sheet.
    """

    sheet_name, criteria = _criteria(ref)
    with context.lock:
        if data_manager.locate_row(context.workbook, sheet_name, criteria) is None:
            raise NotFoundError(f"Unknown subject: {ref}")
        data_manager.update_row(context.workbook, sheet_name, criteria, field_values=field_values)
    log.info("Updated %s: %s", ref, ", ".join(f"{k}={v}" for k, v in field_values.items()))


def add_stock_item(
    context: RuntimeContext,
    *,
    product_id: str,
    branch_id: str,
    product_name: str,
    quantity: Decimal,
    unit: str = "kg",
    timestamp: Optional[datetime] = None,
) -> data_manager.StockRow:
    """Register a product at a branch with its opening quantity.

    The opening quantity is also written as an inbound movement so that the
    movement ledger and the recorded quantity agree from the start.

    Raises:
        ValidationError: If the quantity is negative or the item already
            exists.
    """

    ref = SubjectRef.stock(product_id, branch_id)
    if quantity < Decimal("0"):
        log.error("Opening quantity validation failed: %s", quantity)
        raise ValidationError("Opening quantity must be zero or positive")

    moment = resolve_timestamp(timestamp)
    row = data_manager.StockRow(
        product_id=product_id,
        branch_id=branch_id,
        product_name=product_name,
        quantity=quantity,
        unit=unit,
    )
    sheet_name, criteria = _criteria(ref)
    with context.lock:
        if data_manager.locate_row(context.workbook, sheet_name, criteria) is not None:
            raise ValidationError(f"Stock item already exists: {ref.key}")
        data_manager.append_stock(context.workbook, row)
        if quantity > Decimal("0"):
            record_movement(
                context,
                ref,
                movement_type=MovementType.IN,
                quantity=quantity,
                notes="Opening stock",
                timestamp=moment,
            )
    log.info("Registered stock item '%s' (quantity=%s %s)", ref.key, quantity, unit)
    return row


def record_movement(
    context: RuntimeContext,
    ref: SubjectRef,
    *,
    movement_type: MovementType,
    quantity: Decimal,
    notes: Optional[str],
    timestamp: Optional[datetime] = None,
) -> data_manager.MovementRow:
    """Append one stock movement for ``ref``; ``quantity`` is a magnitude."""

    moment = resolve_timestamp(timestamp)
    movement = data_manager.MovementRow(
        movement_id=allocate_id(context, SheetName.STOCK_MOVEMENTS.value, "MovementID", prefix="M", when=moment),
        product_id=ref.product_id,
        branch_id=ref.branch_id,
        timestamp_iso=moment.isoformat(),
        movement_type=movement_type.value,
        quantity=abs(quantity),
        notes=notes,
    )
    data_manager.append_movement(context.workbook, movement)
    log.info("Recorded %s movement '%s' for %s (quantity=%s)", movement_type.value, movement.movement_id, ref, movement.quantity)
    return movement


def list_movements(context: RuntimeContext, ref: SubjectRef) -> List[data_manager.MovementRow]:
    """Return every movement of a stock subject in sheet order."""

    return [
        movement
        for movement in data_manager.iter_movements(context.workbook)
        if movement.product_id == ref.product_id and movement.branch_id == ref.branch_id
    ]
