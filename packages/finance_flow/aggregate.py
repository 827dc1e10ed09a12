"""Transaction aggregation: totals, running-balance series, category breakdown.

Every function here is a pure transform over an iterable of
:class:`~finance_flow.models.Transaction`. Inputs are materialized once and
never mutated; outputs are freshly allocated on each call, so callers may
invoke these concurrently and repeatedly without coordination.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from decimal import Decimal

from .models import CategoryTotal, DailyPoint, Totals, Transaction, Transactions, TransactionType

_ZERO = Decimal(0)


def compute_totals(transactions: Transactions) -> Totals:
    """Sum income and expense amounts and derive the net balance.

    An empty collection yields ``Totals(0, 0, 0)``.
    """

    total_income = _ZERO
    total_expense = _ZERO
    for tx in transactions:
        if tx.type is TransactionType.INCOME:
            total_income += tx.amount
        else:
            total_expense += tx.amount
    return Totals(
        total_income=total_income,
        total_expense=total_expense,
        net_balance=total_income - total_expense,
    )


def _chronological(transactions: Iterable[Transaction]) -> list[Transaction]:
    # ``sorted`` is stable: same-day entries keep their input order.
    return sorted(transactions, key=lambda tx: tx.date)


def compute_daily_series(transactions: Transactions) -> list[DailyPoint]:
    """Fold transactions in date order into one running-balance point per date.

    Behavior
    --------
    - Sorts a working copy by ``date`` ascending (stable for same-day ties).
    - Keeps a single accumulator starting at 0: ``+amount`` for income,
      ``-amount`` for expense.
    - The first transaction on a date opens that date's bucket; later ones on
      the same date overwrite the bucket balance and append to its detail, so
      each point reflects the balance after its last transaction.
    - Points are emitted in order of first occurrence during the fold. Dates
      with no transactions are absent rather than interpolated.

    Buckets are keyed by the full calendar date; display labels are a
    rendering concern.
    """

    balances: dict[dt.date, Decimal] = {}
    details: dict[dt.date, list[Transaction]] = {}
    running = _ZERO
    for tx in _chronological(transactions):
        running += tx.signed_amount
        balances[tx.date] = running
        details.setdefault(tx.date, []).append(tx)

    # dict preserves first-insertion order, which is the fold order here.
    return [
        DailyPoint(date=day, running_balance=balances[day], transactions=tuple(txs))
        for day, txs in details.items()
    ]


def compute_category_breakdown(transactions: Transactions) -> list[CategoryTotal]:
    """Total expense per category, in first-seen order.

    Income never contributes and never yields a zero-value entry. No expenses
    yields an empty list.
    """

    sums: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.type is not TransactionType.EXPENSE:
            continue
        sums[tx.category] = sums.get(tx.category, _ZERO) + tx.amount
    return [CategoryTotal(category=cat, total_expense=total) for cat, total in sums.items()]


def rank_categories(breakdown: Sequence[CategoryTotal]) -> list[CategoryTotal]:
    """Order a breakdown by total expense, largest first (ties keep input order)."""

    return sorted(breakdown, key=lambda c: c.total_expense, reverse=True)


def recent_activity(transactions: Transactions, *, limit: int = 6) -> list[Transaction]:
    """Return the newest ``limit`` transactions, newest first."""

    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise ValueError("limit must be a non-negative integer")
    ordered = _chronological(transactions)
    ordered.reverse()
    return ordered[:limit]


__all__ = [
    "compute_category_breakdown",
    "compute_daily_series",
    "compute_totals",
    "rank_categories",
    "recent_activity",
]
