"""Tests for the debt installment and cash ledger."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from gudang_recon import correction, data_manager, ledger, record_store
from gudang_recon.constants import DebtStatus
from gudang_recon.exceptions import NotFoundError, ValidationError

from conftest import BASE_MOMENT


def _command(amount: str | None = None, *, settle: bool = False, **overrides) -> ledger.InstallmentCommand:
    values = {
        "debt_id": "D1",
        "cash_account_id": "K1",
        "amount": Decimal(amount) if amount is not None else None,
        "settle": settle,
    }
    values.update(overrides)
    return ledger.InstallmentCommand(**values)


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------


def test_add_debt_starts_unpaid(runtime_context):
    """New debts owe their full total."""

    row = ledger.add_debt(runtime_context, debt_id="D7", party="UD Sentosa", total_amount=Decimal("750"))

    assert row.paid_amount == Decimal("0")
    assert row.remaining_amount == Decimal("750")
    assert row.status == DebtStatus.UNPAID.value
    assert ledger.get_debt(runtime_context, "D7") == row


@pytest.mark.parametrize("total", ["0", "-10"])
def test_add_debt_requires_positive_total(runtime_context, total):
    """A debt must be worth something."""

    with pytest.raises(ValidationError):
        ledger.add_debt(runtime_context, debt_id="D7", party="X", total_amount=Decimal(total))


def test_add_debt_rejects_duplicate_id(runtime_context, debt_ref):
    """Debt ids are unique."""

    with pytest.raises(ValidationError):
        ledger.add_debt(runtime_context, debt_id="D1", party="Other", total_amount=Decimal("5"))


def test_add_cash_account_rejects_negative_balance(runtime_context):
    """Cash accounts cannot open overdrawn."""

    with pytest.raises(ValidationError):
        ledger.add_cash_account(runtime_context, account_id="K2", account_name="Kas", balance=Decimal("-1"))


# ---------------------------------------------------------------------------
# record_installment
# ---------------------------------------------------------------------------


def test_record_installment_updates_debt_cash_and_ledger(runtime_context, debt_ref):
    """A payment moves money from cash into the debt's paid amount."""

    installment = ledger.record_installment(runtime_context, _command("300", paid_on=BASE_MOMENT))

    debt = ledger.get_debt(runtime_context, "D1")
    account = ledger.get_cash_account(runtime_context, "K1")
    entries = list(data_manager.iter_cash_ledger(runtime_context.workbook))

    assert installment.amount == Decimal("300")
    assert installment.installment_id.startswith("I20240501")
    assert debt.paid_amount == Decimal("300")
    assert debt.remaining_amount == Decimal("700")
    assert debt.status == DebtStatus.INSTALLMENT.value
    assert account.balance == Decimal("4700")
    assert len(entries) == 1
    assert entries[0].debit == Decimal("300")
    assert entries[0].credit == Decimal("0")


def test_record_installment_settle_pays_remaining(runtime_context, debt_ref):
    """Settlement pays exactly what is left and marks the debt settled."""

    ledger.record_installment(runtime_context, _command("250"))
    settlement = ledger.record_installment(runtime_context, _command(settle=True))

    debt = ledger.get_debt(runtime_context, "D1")
    assert settlement.amount == Decimal("750")
    assert settlement.notes == "Settlement"
    assert debt.remaining_amount == Decimal("0")
    assert debt.status == DebtStatus.SETTLED.value


@pytest.mark.parametrize("amount", [None, "0", "-5"])
def test_record_installment_requires_positive_amount(runtime_context, debt_ref, amount):
    """Zero, negative, or missing amounts are refused."""

    with pytest.raises(ValidationError):
        ledger.record_installment(runtime_context, _command(amount))


def test_record_installment_cannot_exceed_remaining(runtime_context, debt_ref):
    """Overpaying through an installment is refused before any write."""

    with pytest.raises(ValidationError):
        ledger.record_installment(runtime_context, _command("1000.01"))

    assert ledger.get_cash_account(runtime_context, "K1").balance == Decimal("5000")
    assert ledger.list_installments(runtime_context, "D1") == []


def test_record_installment_requires_sufficient_cash(runtime_context, debt_ref):
    """The cash account must cover the installment."""

    ledger.add_cash_account(runtime_context, account_id="K2", account_name="Kas Kecil", balance=Decimal("50"))

    with pytest.raises(ValidationError, match="Insufficient cash balance. Available: 50"):
        ledger.record_installment(runtime_context, _command("100", cash_account_id="K2"))

    assert ledger.get_debt(runtime_context, "D1").paid_amount == Decimal("0")


def test_record_installment_unknown_debt_raises(runtime_context, debt_ref):
    """Paying an unknown debt is a NotFoundError."""

    with pytest.raises(NotFoundError):
        ledger.record_installment(runtime_context, _command("10", debt_id="D-missing"))


# ---------------------------------------------------------------------------
# delete_installment / list_installments
# ---------------------------------------------------------------------------


def test_delete_installment_refunds_cash_and_recalculates_debt(runtime_context, debt_ref):
    """Cancelling a payment restores cash and rebuilds the debt from the ledger."""

    first = ledger.record_installment(runtime_context, _command("300"))
    ledger.record_installment(runtime_context, _command("200"))

    result = ledger.delete_installment(runtime_context, first.installment_id)

    debt = ledger.get_debt(runtime_context, "D1")
    assert result.corrected is True
    assert (result.before, result.after) == (Decimal("500"), Decimal("200"))
    assert debt.paid_amount == Decimal("200")
    assert debt.remaining_amount == Decimal("800")
    assert ledger.get_cash_account(runtime_context, "K1").balance == Decimal("4800")
    credits = [entry for entry in data_manager.iter_cash_ledger(runtime_context.workbook) if entry.credit > 0]
    assert len(credits) == 1
    assert credits[0].credit == Decimal("300")


def test_delete_last_installment_returns_debt_to_unpaid(runtime_context, debt_ref):
    """Removing every payment puts the debt back to its opening state."""

    only = ledger.record_installment(runtime_context, _command(settle=True))
    ledger.delete_installment(runtime_context, only.installment_id)

    debt = ledger.get_debt(runtime_context, "D1")
    assert debt.paid_amount == Decimal("0")
    assert debt.remaining_amount == Decimal("1000")
    assert debt.status == DebtStatus.UNPAID.value


def test_delete_unknown_installment_raises(runtime_context, debt_ref):
    """Deleting something that is not there is reported."""

    with pytest.raises(NotFoundError):
        ledger.delete_installment(runtime_context, "I-missing")


def test_delete_installment_refuses_approved_correction(runtime_context, debt_ref):
    """Correction rows are part of an approval and cannot be cancelled here."""

    record = record_store.create(runtime_context, debt_ref, Decimal("0"), Decimal("150"))
    correction.apply_record(runtime_context, record)
    (adjustment,) = ledger.list_installments(runtime_context, "D1")

    with pytest.raises(ValidationError):
        ledger.delete_installment(runtime_context, adjustment.installment_id)

    assert ledger.get_debt(runtime_context, "D1").paid_amount == Decimal("150")
    assert ledger.list_installments(runtime_context, "D1") == [adjustment]


def test_list_installments_newest_first(runtime_context, debt_ref):
    """Installment history is shown most recent first."""

    older = ledger.record_installment(runtime_context, _command("100", paid_on=BASE_MOMENT))
    newer = ledger.record_installment(runtime_context, _command("100", paid_on=BASE_MOMENT + timedelta(days=2)))

    assert [row.installment_id for row in ledger.list_installments(runtime_context, "D1")] == [
        newer.installment_id,
        older.installment_id,
    ]
