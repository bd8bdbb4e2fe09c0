"""Pure balance arithmetic used by the reconciliation workflow.

Nothing in this module performs I/O or logging; callers decide what to do
with the numbers, including surfacing the ``overpaid`` flag.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .constants import DebtStatus


ZERO = Decimal("0")


@dataclass(frozen=True)
class RemainingBalance:
    """Outstanding amount of a debt plus whether it was overpaid."""

    remaining: Decimal
    overpaid: bool


def compute_variance(authoritative_value: Decimal, observed_value: Decimal) -> Decimal:
    """Return ``observed_value - authoritative_value``.

    A negative result means the observation is short of the recorded value
    (for stock, a shrinkage); a positive one means a surplus.
    """

    return observed_value - authoritative_value


def compute_remaining(total: Decimal, paid: Decimal) -> RemainingBalance:
    """Return the outstanding balance clamped at zero.

    Args:
        total (Decimal): Nominal amount of the debt.
        paid (Decimal): Amount paid so far.

    Returns:
        RemainingBalance: ``max(0, total - paid)`` and ``overpaid`` set when
            ``paid`` exceeds ``total``.
    """

    return RemainingBalance(remaining=max(ZERO, total - paid), overpaid=paid > total)


def derive_debt_status(total: Decimal, paid: Decimal) -> DebtStatus:
    """Classify a debt as settled, paying in installments, or unpaid."""

    if compute_remaining(total, paid).remaining == ZERO:
        return DebtStatus.SETTLED
    if paid > ZERO:
        return DebtStatus.INSTALLMENT
    return DebtStatus.UNPAID


def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    """Sum decimal amounts, returning ``Decimal('0')`` for an empty input."""

    return sum(amounts, ZERO)
