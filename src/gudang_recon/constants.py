"""Enumerations shared across the gudang-recon modules.

Centralises domain constants so that the data access layer, the
reconciliation core, and the CLI agree on status names, sheet names, and the
workbook schema version.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Prefix written into stock movement notes for opname adjustments. The record
# id follows the prefix so an applied adjustment can be found again.
OPNAME_ADJUSTMENT_PREFIX = "Stock Opname Adjustment - "

# Prefix written into installment notes for approved debt corrections. These
# rows carry the signed variance and no cash account.
DEBT_ADJUSTMENT_PREFIX = "Debt Correction - "


class ReconciliationStatus(str, Enum):
    """Lifecycle states of a reconciliation record."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


TERMINAL_STATUSES: frozenset[ReconciliationStatus] = frozenset(
    {ReconciliationStatus.APPROVED, ReconciliationStatus.REJECTED}
)


class SubjectKind(str, Enum):
    """Kinds of entity a reconciliation record can target."""

    STOCK = "STOCK"
    DEBT = "DEBT"


class DebtStatus(str, Enum):
    """Settlement status of a debt, derived from total and paid amounts."""

    UNPAID = "Belum Lunas"
    INSTALLMENT = "Cicil"
    SETTLED = "Lunas"


class MovementType(str, Enum):
    """Direction of a stock movement."""

    IN = "masuk"
    OUT = "keluar"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    STOCK = "Stock"
    STOCK_MOVEMENTS = "StockMovements"
    DEBTS = "Debts"
    INSTALLMENTS = "Installments"
    CASH_ACCOUNTS = "CashAccounts"
    CASH_LEDGER = "CashLedger"
    RECONCILIATIONS = "Reconciliations"
    AUDIT_LOG = "AuditLog"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "OPNAME_ADJUSTMENT_PREFIX",
    "DEBT_ADJUSTMENT_PREFIX",
    "ReconciliationStatus",
    "TERMINAL_STATUSES",
    "SubjectKind",
    "DebtStatus",
    "MovementType",
    "SheetName",
]
