"""Tests for the pure balance arithmetic."""

from __future__ import annotations

from decimal import Decimal

import pytest

from gudang_recon import calculator
from gudang_recon.constants import DebtStatus


@pytest.mark.parametrize(
    ("authoritative", "observed", "expected"),
    [
        ("100", "95", "-5"),
        ("100", "100", "0"),
        ("0", "12.5", "12.5"),
        ("7.25", "0", "-7.25"),
    ],
)
def test_compute_variance_is_observed_minus_authoritative(authoritative, observed, expected):
    """Variance is the observation minus the recorded value."""

    assert calculator.compute_variance(Decimal(authoritative), Decimal(observed)) == Decimal(expected)


def test_compute_remaining_subtracts_paid_from_total():
    """A partly paid debt keeps the difference outstanding."""

    balance = calculator.compute_remaining(Decimal("1000"), Decimal("250"))
    assert balance.remaining == Decimal("750")
    assert balance.overpaid is False


def test_compute_remaining_clamps_overpayment_to_zero():
    """Paying more than the total leaves nothing remaining and flags it."""

    balance = calculator.compute_remaining(Decimal("1000"), Decimal("1200"))
    assert balance.remaining == Decimal("0")
    assert balance.overpaid is True


def test_compute_remaining_exact_payment_is_not_overpaid():
    """Paying exactly the total is a settlement, not an overpayment."""

    balance = calculator.compute_remaining(Decimal("1000"), Decimal("1000"))
    assert balance.remaining == Decimal("0")
    assert balance.overpaid is False


@pytest.mark.parametrize(
    ("paid", "status"),
    [
        ("0", DebtStatus.UNPAID),
        ("1", DebtStatus.INSTALLMENT),
        ("1000", DebtStatus.SETTLED),
        ("1500", DebtStatus.SETTLED),
    ],
)
def test_derive_debt_status(paid, status):
    """Debt status follows the paid amount."""

    assert calculator.derive_debt_status(Decimal("1000"), Decimal(paid)) is status


def test_sum_amounts_of_nothing_is_zero():
    """An empty ledger sums to zero."""

    assert calculator.sum_amounts([]) == Decimal("0")
    assert calculator.sum_amounts([Decimal("1.5"), Decimal("2")]) == Decimal("3.5")
