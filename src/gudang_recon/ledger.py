"""Debt and cash ledger operations.

Debts carry denormalized ``PaidAmount``/``RemainingAmount``/``Status``
columns that summarize their installments. Recording an installment updates
them incrementally; deleting one recalculates them from the remaining
installments through :func:`gudang_recon.correction.reconcile`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from . import correction, data_manager, log
from .calculator import ZERO, compute_remaining, derive_debt_status
from .constants import DebtStatus, SheetName
from .exceptions import NotFoundError, ValidationError
from .runtime import RuntimeContext, allocate_id, resolve_timestamp
from .subjects import SubjectRef


@dataclass(frozen=True)
class InstallmentCommand:
    """User intent for paying part or all of a debt from a cash account."""

    debt_id: str
    cash_account_id: str
    amount: Optional[Decimal] = None
    settle: bool = False
    paid_on: Optional[datetime] = None
    notes: Optional[str] = None


def get_debt(context: RuntimeContext, debt_id: str) -> data_manager.DebtRow:
    """Resolve a debt by id.

    Raises:
        NotFoundError: If ``debt_id`` is absent from the workbook.
    """

    raw = data_manager.read_row(context.workbook, SheetName.DEBTS.value, {"DebtID": debt_id})
    if raw is None:
        log.warning("Debt lookup failed for id '%s'", debt_id)
        raise NotFoundError(f"Unknown debt id: {debt_id}")
    return data_manager.deserialize_debt(raw)


def get_cash_account(context: RuntimeContext, account_id: str) -> data_manager.CashAccountRow:
    """Resolve a cash account by id.

    Raises:
        NotFoundError: If ``account_id`` is absent from the workbook.
    """

    raw = data_manager.read_row(context.workbook, SheetName.CASH_ACCOUNTS.value, {"AccountID": account_id})
    if raw is None:
        log.warning("Cash account lookup failed for id '%s'", account_id)
        raise NotFoundError(f"Unknown cash account id: {account_id}")
    return data_manager.deserialize_cash_account(raw)


def add_debt(
    context: RuntimeContext,
    *,
    debt_id: str,
    party: str,
    total_amount: Decimal,
    timestamp: Optional[datetime] = None,
) -> data_manager.DebtRow:
    """Register a new, unpaid debt.

    Raises:
        ValidationError: If the total is not positive or the id is taken.
    """

    if total_amount <= ZERO:
        log.error("Debt total validation failed: %s", total_amount)
        raise ValidationError("Debt total must be greater than zero")

    row = data_manager.DebtRow(
        debt_id=debt_id,
        party=party,
        total_amount=total_amount,
        paid_amount=ZERO,
        remaining_amount=total_amount,
        status=DebtStatus.UNPAID.value,
        updated_at_iso=resolve_timestamp(timestamp).isoformat(),
    )
    with context.lock:
        if data_manager.locate_row(context.workbook, SheetName.DEBTS.value, {"DebtID": debt_id}) is not None:
            raise ValidationError(f"Debt already exists: {debt_id}")
        data_manager.append_debt(context.workbook, row)
    log.info("Registered debt '%s' to '%s' (total=%s)", debt_id, party, total_amount)
    return row


def add_cash_account(
    context: RuntimeContext,
    *,
    account_id: str,
    account_name: str,
    balance: Decimal,
) -> data_manager.CashAccountRow:
    """Register a cash account with its opening balance.

    Raises:
        ValidationError: If the balance is negative or the id is taken.
    """

    if balance < ZERO:
        log.error("Cash balance validation failed: %s", balance)
        raise ValidationError("Opening balance must be zero or positive")

    row = data_manager.CashAccountRow(account_id=account_id, account_name=account_name, balance=balance)
    with context.lock:
        if data_manager.locate_row(context.workbook, SheetName.CASH_ACCOUNTS.value, {"AccountID": account_id}) is not None:
            raise ValidationError(f"Cash account already exists: {account_id}")
        data_manager.append_cash_account(context.workbook, row)
    log.info("Registered cash account '%s' (balance=%s)", account_id, balance)
    return row


def record_installment(context: RuntimeContext, command: InstallmentCommand) -> data_manager.InstallmentRow:
    """Pay an installment on a debt out of a cash account.

    With ``settle=True`` the whole remaining balance is paid and
    ``command.amount`` is ignored. The cash account is debited, a cash ledger
    entry is written, and the debt's paid/remaining/status columns are
    updated.

    Raises:
        NotFoundError: If the debt or cash account does not exist.
        ValidationError: If the amount is not positive, exceeds the remaining
            balance, or exceeds the cash available.
    """

    moment = resolve_timestamp(command.paid_on)
    with context.lock:
        debt = get_debt(context, command.debt_id)
        amount = debt.remaining_amount if command.settle else command.amount
        if amount is None or amount <= ZERO:
            log.error("Installment amount validation failed for debt '%s': %s", debt.debt_id, amount)
            raise ValidationError("Installment amount must be greater than zero")
        if amount > debt.remaining_amount:
            log.error("Installment of %s exceeds remaining %s on debt '%s'", amount, debt.remaining_amount, debt.debt_id)
            raise ValidationError("Installment exceeds the remaining debt")

        account = get_cash_account(context, command.cash_account_id)
        if account.balance < amount:
            log.error("Cash account '%s' balance %s cannot cover %s", account.account_id, account.balance, amount)
            raise ValidationError(f"Insufficient cash balance. Available: {account.balance}")

        installment = data_manager.InstallmentRow(
            installment_id=allocate_id(context, SheetName.INSTALLMENTS.value, "InstallmentID", prefix="I", when=moment),
            debt_id=debt.debt_id,
            paid_on_iso=moment.isoformat(),
            amount=amount,
            cash_account_id=account.account_id,
            notes=command.notes or ("Settlement" if command.settle else None),
        )
        paid = debt.paid_amount + amount
        balance = compute_remaining(debt.total_amount, paid)

        data_manager.update_row(
            context.workbook,
            SheetName.CASH_ACCOUNTS.value,
            {"AccountID": account.account_id},
            field_values={"Balance": account.balance - amount},
        )
        data_manager.append_installment(context.workbook, installment)
        data_manager.update_row(
            context.workbook,
            SheetName.DEBTS.value,
            {"DebtID": debt.debt_id},
            field_values={
                "PaidAmount": paid,
                "RemainingAmount": balance.remaining,
                "Status": derive_debt_status(debt.total_amount, paid).value,
                "UpdatedAt": moment.isoformat(),
            },
        )
        _append_cash_entry(
            context,
            account.account_id,
            debit=amount,
            credit=ZERO,
            notes=f"{'Settlement' if command.settle else 'Installment'} of debt - {debt.party} #{debt.debt_id}",
            when=moment,
        )

    log.info(
        "Recorded installment '%s' on debt '%s' (amount=%s, remaining=%s)",
        installment.installment_id,
        debt.debt_id,
        amount,
        balance.remaining,
    )
    return installment


def delete_installment(
    context: RuntimeContext,
    installment_id: str,
    *,
    timestamp: Optional[datetime] = None,
) -> correction.CorrectionResult:
    """Cancel an installment and recalculate its debt from the ledger.

    The amount is returned to the cash account (when it still exists) with a
    credit entry, the installment row is removed, and the debt's
    denormalized columns are rebuilt from the installments that remain.

    Raises:
        NotFoundError: If the installment does not exist.
        ValidationError: If the installment is an approved debt correction.
    """

    moment = resolve_timestamp(timestamp)
    sheet = SheetName.INSTALLMENTS.value
    with context.lock:
        raw = data_manager.read_row(context.workbook, sheet, {"InstallmentID": installment_id})
        if raw is None:
            log.warning("Installment lookup failed for id '%s'", installment_id)
            raise NotFoundError(f"Unknown installment id: {installment_id}")
        installment = data_manager.deserialize_installment(raw)
        if correction.is_debt_adjustment(installment):
            log.error("Installment '%s' is an approved correction and cannot be deleted", installment_id)
            raise ValidationError(f"Installment {installment_id} is an approved correction and cannot be deleted")

        try:
            account = get_cash_account(context, installment.cash_account_id)
        except NotFoundError:
            log.warning(
                "Cash account '%s' is gone; installment '%s' refund not booked",
                installment.cash_account_id,
                installment_id,
            )
        else:
            data_manager.update_row(
                context.workbook,
                SheetName.CASH_ACCOUNTS.value,
                {"AccountID": account.account_id},
                field_values={"Balance": account.balance + installment.amount},
            )
            _append_cash_entry(
                context,
                account.account_id,
                debit=ZERO,
                credit=installment.amount,
                notes=f"Cancelled installment of debt #{installment.debt_id}",
                when=moment,
            )

        data_manager.delete_row(context.workbook, sheet, {"InstallmentID": installment_id})
        log.info("Deleted installment '%s' (amount=%s)", installment_id, installment.amount)
        return correction.reconcile(context, SubjectRef.debt(installment.debt_id), timestamp=moment)


def list_installments(context: RuntimeContext, debt_id: str) -> List[data_manager.InstallmentRow]:
    """Return the installments of ``debt_id``, newest first."""

    rows = [row for row in data_manager.iter_installments(context.workbook) if row.debt_id == debt_id]
    rows.sort(key=lambda row: (row.paid_on_iso, row.installment_id), reverse=True)
    return rows


def _append_cash_entry(
    context: RuntimeContext,
    account_id: str,
    *,
    debit: Decimal,
    credit: Decimal,
    notes: str,
    when: datetime,
) -> None:
    data_manager.append_cash_ledger(
        context.workbook,
        data_manager.CashLedgerRow(
            entry_id=allocate_id(context, SheetName.CASH_LEDGER.value, "EntryID", prefix="C", when=when),
            account_id=account_id,
            timestamp_iso=when.isoformat(),
            debit=debit,
            credit=credit,
            notes=notes,
        ),
    )
