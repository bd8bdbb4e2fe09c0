"""Data access layer for gudang-recon.

This module provides low-level helpers that read from and write to the
warehouse workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and appending, updating,
   conditionally updating, or deleting individual rows.

None of the helpers here take locks. Callers that need a conditional write to
be atomic with respect to other threads must hold the runtime context lock
around :func:`compare_and_update`.
"""


from __future__ import annotations

import configparser
import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet
import openpyxl

from . import log
from .constants import SheetName


CONFIG_FILE_NAME = "config.ini"
DEFAULT_PAGE_SIZE = 10

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.STOCK.value: [
        "ProductID",
        "BranchID",
        "ProductName",
        "Quantity",
        "Unit",
    ],
    SheetName.STOCK_MOVEMENTS.value: [
        "MovementID",
        "ProductID",
        "BranchID",
        "Timestamp",
        "MovementType",
        "Quantity",
        "Notes",
    ],
    SheetName.DEBTS.value: [
        "DebtID",
        "Party",
        "TotalAmount",
        "PaidAmount",
        "RemainingAmount",
        "Status",
        "UpdatedAt",
    ],
    SheetName.INSTALLMENTS.value: [
        "InstallmentID",
        "DebtID",
        "PaidOn",
        "Amount",
        "CashAccountID",
        "Notes",
    ],
    SheetName.CASH_ACCOUNTS.value: [
        "AccountID",
        "AccountName",
        "Balance",
    ],
    SheetName.CASH_LEDGER.value: [
        "EntryID",
        "AccountID",
        "Timestamp",
        "Debit",
        "Credit",
        "Notes",
    ],
    SheetName.RECONCILIATIONS.value: [
        "RecordID",
        "SubjectKind",
        "SubjectKey",
        "AuthoritativeValue",
        "ObservedValue",
        "Status",
        "Note",
        "CreatedAt",
        "ResolvedAt",
        "SubmittedBy",
        "ResolvedBy",
    ],
    SheetName.AUDIT_LOG.value: [
        "Timestamp",
        "SubjectKind",
        "SubjectKey",
        "Action",
        "FromStatus",
        "ToStatus",
        "Actor",
        "Detail",
    ],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    warehouse_name: str
    schema_version: str
    default_actor: str
    page_size: int = DEFAULT_PAGE_SIZE
    audit_enabled: bool = True
    log_dir: Optional[Path] = None
    log_level: str = "INFO"


@dataclass(frozen=True)
class StockRow:
    """In-memory view of a row from the ``Stock`` sheet."""

    product_id: str
    branch_id: str
    product_name: str
    quantity: Decimal
    unit: str


@dataclass(frozen=True)
class MovementRow:
    """In-memory view of a row from the ``StockMovements`` sheet."""

    movement_id: str
    product_id: str
    branch_id: str
    timestamp_iso: str
    movement_type: str
    quantity: Decimal
    notes: Optional[str]


@dataclass(frozen=True)
class DebtRow:
    """In-memory view of a row from the ``Debts`` sheet."""

    debt_id: str
    party: str
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: str
    updated_at_iso: str


@dataclass(frozen=True)
class InstallmentRow:
    """In-memory view of a row from the ``Installments`` sheet."""

    installment_id: str
    debt_id: str
    paid_on_iso: str
    amount: Decimal
    cash_account_id: str
    notes: Optional[str]


@dataclass(frozen=True)
class CashAccountRow:
    """In-memory view of a row from the ``CashAccounts`` sheet."""

    account_id: str
    account_name: str
    balance: Decimal


@dataclass(frozen=True)
class CashLedgerRow:
    """In-memory view of a row from the ``CashLedger`` sheet."""

    entry_id: str
    account_id: str
    timestamp_iso: str
    debit: Decimal
    credit: Decimal
    notes: Optional[str]


@dataclass(frozen=True)
class ReconciliationRow:
    """In-memory view of a row from the ``Reconciliations`` sheet.

    The variance is intentionally absent: it is derived from the two value
    columns whenever a record is read.
    """

    record_id: str
    subject_kind: str
    subject_key: str
    authoritative_value: Decimal
    observed_value: Decimal
    status: str
    note: Optional[str]
    created_at_iso: str
    resolved_at_iso: Optional[str]
    submitted_by: Optional[str]
    resolved_by: Optional[str]


@dataclass(frozen=True)
class AuditRow:
    """In-memory view of a row from the ``AuditLog`` sheet."""

    timestamp_iso: str
    subject_kind: str
    subject_key: str
    action: str
    from_status: Optional[str]
    to_status: Optional[str]
    actor: Optional[str]
    detail: Optional[str]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data. Required entries are validated later by
            :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must define ``DataFile``, ``WarehouseName`` and
    ``SchemaVersion``; ``[Defaults]`` must define ``DefaultActor``.
    ``[Defaults] PageSize``, ``[Audit] Enabled`` and ``[Logging] LogDir`` and
    ``Level`` are optional. Relative ``DataFile`` and ``LogDir`` entries are
    anchored at ``base_path`` (or the current working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` and ``LogDir`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If ``PageSize`` is not a positive integer, ``Enabled`` is
            not a boolean literal, or ``Level`` is not a logging level name.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        warehouse_name = parser.get("System", "WarehouseName")
        schema_version = parser.get("System", "SchemaVersion")
        default_actor = parser.get("Defaults", "DefaultActor")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    page_size = parser.getint("Defaults", "PageSize", fallback=DEFAULT_PAGE_SIZE)
    if page_size < 1:
        raise ValueError(f"PageSize must be at least 1, got {page_size}")
    audit_enabled = parser.getboolean("Audit", "Enabled", fallback=True)
    log_level = parser.get("Logging", "Level", fallback="INFO").strip().upper()
    if log_level not in logging.getLevelNamesMapping():
        raise ValueError(f"Unknown logging level: {log_level}")
    log_dir_raw = parser.get("Logging", "LogDir", fallback=None)

    if base_path is None:
        base_path = Path.cwd()
    data_file_path = _anchor(Path(data_file_raw), base_path)
    log_dir = _anchor(Path(log_dir_raw), base_path) if log_dir_raw else None

    return ConfigSettings(
        data_file=data_file_path,
        warehouse_name=warehouse_name,
        schema_version=schema_version,
        default_actor=default_actor,
        page_size=page_size,
        audit_enabled=audit_enabled,
        log_dir=log_dir,
        log_level=log_level,
    )


def _anchor(path: Path, base_path: Path) -> Path:
    return path if path.is_absolute() else (base_path / path).resolve()


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the warehouse workbook and verify its sheets.

    Args:
        data_file (Path): Filesystem path to the workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
        KeyError: If one of the sheets listed in :data:`SHEET_COLUMNS` is
            missing from the workbook.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    missing = [name for name in SHEET_COLUMNS if name not in wb.sheetnames]
    if missing:
        raise KeyError(f"Workbook '{data_file}' is missing sheets: {', '.join(missing)}")
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    Parent directories are created on demand.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the serialized
            workbook.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


# ---------------------------------------------------------------------------
# Generic sheet helpers
# ---------------------------------------------------------------------------


def _header_map(sheet: Worksheet) -> dict[str, int]:
    """Map header titles to 1-based column indices."""

    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1]) if cell.value is not None}


def iter_sheet(workbook: Workbook, sheet_name: str) -> Iterator[tuple[object, ...]]:
    """Yield the raw values of every populated data row of ``sheet_name``.

    The header row and fully empty rows are skipped. Rows are padded to the
    declared column count so deserializers can unpack them safely.
    """

    width = len(SHEET_COLUMNS[sheet_name])
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, max_col=width, values_only=True):
        if any(cell is not None for cell in raw):
            yield tuple(raw) + (None,) * (width - len(raw))


def locate_row(workbook: Workbook, sheet_name: str, criteria: Mapping[str, object]) -> Optional[int]:
    """Find the first row whose cells equal every value in ``criteria``.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        criteria (Mapping[str, object]): Header title to expected cell value.
            Values are compared as strings so ids typed as numbers by Excel
            still match.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If any criteria column is not present in the header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    for column in criteria:
        if column not in header_map:
            raise KeyError(f"Unknown column: {column}")

    wanted = {header_map[column] - 1: str(value) for column, value in criteria.items()}
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if all(idx < len(row) and row[idx] is not None and str(row[idx]) == value for idx, value in wanted.items()):
            return row_idx

    return None


def read_row(workbook: Workbook, sheet_name: str, criteria: Mapping[str, object]) -> Optional[tuple[object, ...]]:
    """Return the raw values of the row matching ``criteria`` or ``None``."""

    row_index = locate_row(workbook, sheet_name, criteria)
    if row_index is None:
        return None
    width = len(SHEET_COLUMNS[sheet_name])
    sheet = workbook[sheet_name]
    return tuple(sheet.cell(row=row_index, column=col).value for col in range(1, width + 1))


def update_row(workbook: Workbook, sheet_name: str, criteria: Mapping[str, object], *, field_values: Mapping[str, Any]) -> None:
    """Update selected columns for the row matching ``criteria``.

    Only the specified fields are modified, leaving other columns untouched.

    Raises:
        KeyError: If the row or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, criteria)
    if row_index is None:
        raise KeyError(f"Row not found in '{sheet_name}': {dict(criteria)}")
    _write_cells(workbook[sheet_name], row_index, field_values)


def compare_and_update(
    workbook: Workbook,
    sheet_name: str,
    criteria: Mapping[str, object],
    *,
    expected: Mapping[str, object],
    field_values: Mapping[str, Any],
) -> bool:
    """Update a row only when its current cells equal ``expected``.

    This is the conditional write used for status transitions: the caller
    names the row, the values it believes are current, and the replacement
    values. Nothing is written when the comparison fails.

    Args:
        workbook (Workbook): Workbook containing ``sheet_name``.
        sheet_name (str): Worksheet to modify.
        criteria (Mapping[str, object]): Columns identifying the row.
        expected (Mapping[str, object]): Columns whose current value must
            match (compared as strings, ``None`` matches an empty cell).
        field_values (Mapping[str, Any]): Replacement values.

    Returns:
        bool: ``True`` when the row matched and was written, ``False`` when
            the expected values no longer hold.

    Raises:
        KeyError: If the row or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, criteria)
    if row_index is None:
        raise KeyError(f"Row not found in '{sheet_name}': {dict(criteria)}")

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    for column, value in expected.items():
        if column not in header_map:
            raise KeyError(f"Unknown column: {column}")
        current = sheet.cell(row=row_index, column=header_map[column]).value
        if (None if current is None else str(current)) != (None if value is None else str(value)):
            log.debug(
                "Conditional write on '%s' skipped: %s is %r, expected %r",
                sheet_name,
                column,
                current,
                value,
            )
            return False

    _write_cells(sheet, row_index, field_values)
    return True


def delete_row(workbook: Workbook, sheet_name: str, criteria: Mapping[str, object]) -> bool:
    """Remove the row matching ``criteria``; return ``False`` when absent."""

    row_index = locate_row(workbook, sheet_name, criteria)
    if row_index is None:
        return False
    workbook[sheet_name].delete_rows(row_index, 1)
    return True


def _write_cells(sheet: Worksheet, row_index: int, field_values: Mapping[str, Any]) -> None:
    header_map = _header_map(sheet)
    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown field: {field}")
        sheet.cell(row=row_index, column=header_map[field], value=value)


# ---------------------------------------------------------------------------
# Typed iteration and appends
# ---------------------------------------------------------------------------


def iter_stock(workbook: Workbook) -> Iterable[StockRow]:
    """Iterate over stock items stored on the ``Stock`` worksheet."""

    for raw in iter_sheet(workbook, SheetName.STOCK.value):
        yield deserialize_stock(raw)


def iter_movements(workbook: Workbook) -> Iterable[MovementRow]:
    """Iterate over the ``StockMovements`` worksheet in sheet order."""

    for raw in iter_sheet(workbook, SheetName.STOCK_MOVEMENTS.value):
        yield deserialize_movement(raw)


def iter_installments(workbook: Workbook) -> Iterable[InstallmentRow]:
    """Iterate over the ``Installments`` worksheet."""

    for raw in iter_sheet(workbook, SheetName.INSTALLMENTS.value):
        yield deserialize_installment(raw)


def iter_cash_ledger(workbook: Workbook) -> Iterable[CashLedgerRow]:
    """Iterate over the ``CashLedger`` worksheet."""

    for raw in iter_sheet(workbook, SheetName.CASH_LEDGER.value):
        yield deserialize_cash_ledger(raw)


def iter_reconciliations(workbook: Workbook) -> Iterable[ReconciliationRow]:
    """Stream reconciliation records from the ``Reconciliations`` worksheet.

    Value columns are normalized into :class:`~decimal.Decimal` instances and
    optional text columns stay ``None`` when blank.
    """

    for raw in iter_sheet(workbook, SheetName.RECONCILIATIONS.value):
        yield deserialize_reconciliation(raw)


def iter_audit_log(workbook: Workbook) -> Iterable[AuditRow]:
    """Iterate over the ``AuditLog`` worksheet."""

    for raw in iter_sheet(workbook, SheetName.AUDIT_LOG.value):
        yield deserialize_audit(raw)


def append_stock(workbook: Workbook, record: StockRow) -> None:
    """Append a stock item to the ``Stock`` worksheet."""

    workbook[SheetName.STOCK.value].append(serialize_stock(record))


def append_movement(workbook: Workbook, record: MovementRow) -> None:
    """Append a stock movement to the ``StockMovements`` worksheet."""

    workbook[SheetName.STOCK_MOVEMENTS.value].append(serialize_movement(record))


def append_debt(workbook: Workbook, record: DebtRow) -> None:
    """Append a debt to the ``Debts`` worksheet."""

    workbook[SheetName.DEBTS.value].append(serialize_debt(record))


def append_installment(workbook: Workbook, record: InstallmentRow) -> None:
    """Append an installment to the ``Installments`` worksheet."""

    workbook[SheetName.INSTALLMENTS.value].append(serialize_installment(record))


def append_cash_account(workbook: Workbook, record: CashAccountRow) -> None:
    """Append a cash account to the ``CashAccounts`` worksheet."""

    workbook[SheetName.CASH_ACCOUNTS.value].append(serialize_cash_account(record))


def append_cash_ledger(workbook: Workbook, record: CashLedgerRow) -> None:
    """Append a cash ledger entry to the ``CashLedger`` worksheet."""

    workbook[SheetName.CASH_LEDGER.value].append(serialize_cash_ledger(record))


def append_reconciliation(workbook: Workbook, record: ReconciliationRow) -> None:
    """Append a reconciliation record to the ``Reconciliations`` worksheet.

    Numerical fields remain :class:`~decimal.Decimal` instances after
    serialization so Excel preserves precision when the workbook is saved.
    """

    workbook[SheetName.RECONCILIATIONS.value].append(serialize_reconciliation(record))


def append_audit(workbook: Workbook, record: AuditRow) -> None:
    """Append an audit entry to the ``AuditLog`` worksheet."""

    workbook[SheetName.AUDIT_LOG.value].append(serialize_audit(record))


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _to_decimal(raw: object, default: str = "0") -> Decimal:
    """Normalize a worksheet cell into a :class:`~decimal.Decimal`."""

    return Decimal(str(raw)) if raw is not None else Decimal(default)


def _optional_str(raw: object) -> Optional[str]:
    return str(raw) if raw is not None else None


def serialize_stock(record: StockRow) -> list[object]:
    """Return ``[ProductID, BranchID, ProductName, Quantity, Unit]``."""

    return [record.product_id, record.branch_id, record.product_name, record.quantity, record.unit]


def serialize_movement(record: MovementRow) -> list[object]:
    """Convert a movement dataclass into the worksheet column ordering."""

    return [
        record.movement_id,
        record.product_id,
        record.branch_id,
        record.timestamp_iso,
        record.movement_type,
        record.quantity,
        record.notes,
    ]


def serialize_debt(record: DebtRow) -> list[object]:
    """Convert a debt dataclass into the worksheet column ordering."""

    return [
        record.debt_id,
        record.party,
        record.total_amount,
        record.paid_amount,
        record.remaining_amount,
        record.status,
        record.updated_at_iso,
    ]


def serialize_installment(record: InstallmentRow) -> list[object]:
    """Convert an installment dataclass into the worksheet column ordering."""

    return [
        record.installment_id,
        record.debt_id,
        record.paid_on_iso,
        record.amount,
        record.cash_account_id,
        record.notes,
    ]


def serialize_cash_account(record: CashAccountRow) -> list[object]:
    """Return ``[AccountID, AccountName, Balance]``."""

    return [record.account_id, record.account_name, record.balance]


def serialize_cash_ledger(record: CashLedgerRow) -> list[object]:
    """Convert a cash ledger dataclass into the worksheet column ordering."""

    return [
        record.entry_id,
        record.account_id,
        record.timestamp_iso,
        record.debit,
        record.credit,
        record.notes,
    ]


def serialize_reconciliation(record: ReconciliationRow) -> list[object]:
    """Convert a reconciliation dataclass into the worksheet column ordering.

    Args:
        record (ReconciliationRow): Structured record to transform.

    Returns:
        list[object]: Values ordered to match the spreadsheet columns,
            preserving :class:`~decimal.Decimal` instances for the value
            columns.
    """

    return [
        record.record_id,
        record.subject_kind,
        record.subject_key,
        record.authoritative_value,
        record.observed_value,
        record.status,
        record.note,
        record.created_at_iso,
        record.resolved_at_iso,
        record.submitted_by,
        record.resolved_by,
    ]


def serialize_audit(record: AuditRow) -> list[object]:
    """Convert an audit dataclass into the worksheet column ordering."""

    return [
        record.timestamp_iso,
        record.subject_kind,
        record.subject_key,
        record.action,
        record.from_status,
        record.to_status,
        record.actor,
        record.detail,
    ]


def deserialize_stock(raw_row: Sequence[object]) -> StockRow:
    """Convert a raw worksheet row into a strongly typed stock record.

    Identifier fields are coerced to ``str`` to avoid surprises caused by
    Excel automatically interpreting numbers.
    """

    product_id, branch_id, product_name, quantity_raw, unit = raw_row[:5]
    return StockRow(
        product_id=str(product_id),
        branch_id=str(branch_id),
        product_name=str(product_name) if product_name is not None else "",
        quantity=_to_decimal(quantity_raw),
        unit=str(unit) if unit is not None else "",
    )


def deserialize_movement(raw_row: Sequence[object]) -> MovementRow:
    """Convert a raw worksheet row into a strongly typed movement record."""

    movement_id, product_id, branch_id, timestamp_iso, movement_type, quantity_raw, notes = raw_row[:7]
    return MovementRow(
        movement_id=str(movement_id),
        product_id=str(product_id),
        branch_id=str(branch_id),
        timestamp_iso=str(timestamp_iso) if timestamp_iso is not None else "",
        movement_type=str(movement_type) if movement_type is not None else "",
        quantity=_to_decimal(quantity_raw),
        notes=_optional_str(notes),
    )


def deserialize_debt(raw_row: Sequence[object]) -> DebtRow:
    """Convert a raw worksheet row into a strongly typed debt record."""

    debt_id, party, total_raw, paid_raw, remaining_raw, status, updated_at = raw_row[:7]
    return DebtRow(
        debt_id=str(debt_id),
        party=str(party) if party is not None else "",
        total_amount=_to_decimal(total_raw, "0.00"),
        paid_amount=_to_decimal(paid_raw, "0.00"),
        remaining_amount=_to_decimal(remaining_raw, "0.00"),
        status=str(status) if status is not None else "",
        updated_at_iso=str(updated_at) if updated_at is not None else "",
    )


def deserialize_installment(raw_row: Sequence[object]) -> InstallmentRow:
    """Convert a raw worksheet row into a strongly typed installment record."""

    installment_id, debt_id, paid_on, amount_raw, cash_account_id, notes = raw_row[:6]
    return InstallmentRow(
        installment_id=str(installment_id),
        debt_id=str(debt_id),
        paid_on_iso=str(paid_on) if paid_on is not None else "",
        amount=_to_decimal(amount_raw, "0.00"),
        cash_account_id=str(cash_account_id) if cash_account_id is not None else "",
        notes=_optional_str(notes),
    )


def deserialize_cash_account(raw_row: Sequence[object]) -> CashAccountRow:
    """Convert a raw worksheet row into a strongly typed cash account."""

    account_id, account_name, balance_raw = raw_row[:3]
    return CashAccountRow(
        account_id=str(account_id),
        account_name=str(account_name) if account_name is not None else "",
        balance=_to_decimal(balance_raw, "0.00"),
    )


def deserialize_cash_ledger(raw_row: Sequence[object]) -> CashLedgerRow:
    """Convert a raw worksheet row into a strongly typed cash ledger entry."""

    entry_id, account_id, timestamp_iso, debit_raw, credit_raw, notes = raw_row[:6]
    return CashLedgerRow(
        entry_id=str(entry_id),
        account_id=str(account_id),
        timestamp_iso=str(timestamp_iso) if timestamp_iso is not None else "",
        debit=_to_decimal(debit_raw, "0.00"),
        credit=_to_decimal(credit_raw, "0.00"),
        notes=_optional_str(notes),
    )


def deserialize_reconciliation(raw_row: Sequence[object]) -> ReconciliationRow:
    """Convert a raw worksheet row into a strongly typed reconciliation record.

    Args:
        raw_row (Sequence[object]): Raw cell values in their worksheet order.

    Returns:
        ReconciliationRow: Dataclass reflecting the row contents with
            consistent Python types.
    """

    (
        record_id,
        subject_kind,
        subject_key,
        authoritative_raw,
        observed_raw,
        status,
        note,
        created_at,
        resolved_at,
        submitted_by,
        resolved_by,
    ) = raw_row[:11]

    return ReconciliationRow(
        record_id=str(record_id),
        subject_kind=str(subject_kind) if subject_kind is not None else "",
        subject_key=str(subject_key) if subject_key is not None else "",
        authoritative_value=_to_decimal(authoritative_raw),
        observed_value=_to_decimal(observed_raw),
        status=str(status) if status is not None else "",
        note=_optional_str(note),
        created_at_iso=str(created_at) if created_at is not None else "",
        resolved_at_iso=_optional_str(resolved_at),
        submitted_by=_optional_str(submitted_by),
        resolved_by=_optional_str(resolved_by),
    )


def deserialize_audit(raw_row: Sequence[object]) -> AuditRow:
    """Convert a raw worksheet row into a strongly typed audit entry."""

    timestamp_iso, subject_kind, subject_key, action, from_status, to_status, actor, detail = raw_row[:8]
    return AuditRow(
        timestamp_iso=str(timestamp_iso) if timestamp_iso is not None else "",
        subject_kind=str(subject_kind) if subject_kind is not None else "",
        subject_key=str(subject_key) if subject_key is not None else "",
        action=str(action) if action is not None else "",
        from_status=_optional_str(from_status),
        to_status=_optional_str(to_status),
        actor=_optional_str(actor),
        detail=_optional_str(detail),
    )
