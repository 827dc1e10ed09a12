"""Data models and type aliases for ``finance_flow``.

Two families live here:

- Domain records (frozen dataclasses): :class:`Transaction` plus the derived
  :class:`DailyPoint`, :class:`CategoryTotal` and :class:`Totals` produced by
  :mod:`finance_flow.aggregate`. These are plain values; they carry no I/O.
- Wire DTOs (Pydantic): :class:`ParsedTransaction` and
  :class:`FinancialInsight` describe what the model returns, and
  :class:`LedgerFile` is the on-disk JSON document of the file store.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Core record
# ---------------------------------------------------------------------------


class TransactionType(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


def _to_amount(raw: Any) -> Decimal:
    # Booleans are ints; they are never a meaningful amount.
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"invalid amount: {raw!r}")
    if isinstance(raw, Decimal):
        d = raw
    else:
        try:
            d = Decimal(str(raw).strip())
        except InvalidOperation as exc:
            raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"amount must be finite: {raw!r}")
    if d < 0:
        raise ValueError(f"amount must be non-negative (direction is carried by type): {raw!r}")
    return d


def _to_date(raw: Any) -> dt.date:
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    if isinstance(raw, str):
        s = raw.strip()
        # Accept 'YYYY-MM-DD' and ISO datetimes; only the calendar date is kept.
        first = s.split()[0] if s else s
        try:
            return dt.date.fromisoformat(first.split("T", 1)[0])
        except ValueError as exc:
            raise ValueError(f"invalid date (expected YYYY-MM-DD): {raw!r}") from exc
    raise ValueError(f"invalid date: {raw!r}")


@dataclass(frozen=True, slots=True)
class Transaction:
    """A single recorded money movement.

    Attributes
    ----------
    id:
        Opaque identifier assigned once by the ingestion path.
    amount:
        Non-negative magnitude. Ints, floats and numeric strings are coerced to
        :class:`~decimal.Decimal` so sums stay exact regardless of order.
    category:
        Free-form label; no closed vocabulary.
    date:
        Calendar date. ISO strings are accepted and parsed.
    description, merchant:
        Display strings.
    type:
        :class:`TransactionType`; the only carrier of direction.
    """

    id: str
    amount: Decimal
    category: str
    date: dt.date
    description: str
    merchant: str
    type: TransactionType

    def __post_init__(self) -> None:
        # Frozen dataclass: normalized values are written through object.__setattr__.
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("Transaction.id must be a non-empty string")
        object.__setattr__(self, "amount", _to_amount(self.amount))
        object.__setattr__(self, "date", _to_date(self.date))
        try:
            object.__setattr__(self, "type", TransactionType(self.type))
        except ValueError as exc:
            raise ValueError(f"Transaction.type must be INCOME or EXPENSE: {self.type!r}") from exc
        if not isinstance(self.category, str) or not self.category.strip():
            raise ValueError("Transaction.category must be a non-empty string")
        for name in ("description", "merchant"):
            val = getattr(self, name)
            object.__setattr__(self, name, "" if val is None else str(val))

    @property
    def signed_amount(self) -> Decimal:
        """``+amount`` for income, ``-amount`` for expense."""

        return self.amount if self.type is TransactionType.INCOME else -self.amount

    def to_record(self) -> dict[str, Any]:
        """Return a JSON-friendly mapping (decimal string amount, ISO date)."""

        return {
            "id": self.id,
            "amount": str(self.amount),
            "category": self.category,
            "date": self.date.isoformat(),
            "description": self.description,
            "merchant": self.merchant,
            "type": self.type.value,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Transaction:
        return cls(
            id=record["id"],
            amount=record["amount"],
            category=record["category"],
            date=record["date"],
            description=record.get("description") or "",
            merchant=record.get("merchant") or "",
            type=record["type"],
        )


type Transactions = Iterable[Transaction]
"""Any iterable of transactions; aggregation never mutates or retains it."""


# ---------------------------------------------------------------------------
# Derived values (recomputed on every aggregation call)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DailyPoint:
    """One bucket of the running-balance series.

    ``running_balance`` is the accumulator value after the last transaction
    folded for ``date``; ``transactions`` holds that day's entries in fold
    order.
    """

    date: dt.date
    running_balance: Decimal
    transactions: tuple[Transaction, ...]


@dataclass(frozen=True, slots=True)
class CategoryTotal:
    category: str
    total_expense: Decimal


class Totals(NamedTuple):
    total_income: Decimal
    total_expense: Decimal
    net_balance: Decimal


# ---------------------------------------------------------------------------
# Wire DTOs (model output and on-disk document)
# ---------------------------------------------------------------------------


class ParsedTransaction(BaseModel):
    """Typed, validated model of one transaction extracted by the model.

    Mirrors the strict JSON schema sent with the capture request. The
    ``amount`` is folded to its magnitude because direction belongs to
    ``type``.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    amount: Decimal
    merchant: str
    date: dt.date
    description: str
    category: str = Field(min_length=1)
    type: TransactionType

    @field_validator("amount")
    @classmethod
    def _magnitude(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("amount must be finite")
        return abs(v)

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_date(cls, v: Any) -> dt.date:
        return _to_date(v)

    def to_transaction(self, tx_id: str) -> Transaction:
        return Transaction(
            id=tx_id,
            amount=self.amount,
            category=self.category,
            date=self.date,
            description=self.description,
            merchant=self.merchant,
            type=self.type,
        )


class FinancialInsight(BaseModel):
    """Summary and health score returned by the insight request.

    Field aliases match the camelCase names in the response schema.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    summary: str
    savings_tip: str = Field(alias="savingsTip")
    spending_trend: Literal["UP", "DOWN", "STABLE"] = Field(alias="spendingTrend")
    health_score: float = Field(alias="healthScore", ge=0, le=100)
    financial_rank: str | None = Field(default=None, alias="financialRank")

    @field_validator("financial_rank")
    @classmethod
    def _blank_rank_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v or None


class LedgerRecord(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")

    id: str
    amount: str
    category: str
    date: str
    description: str
    merchant: str
    type: Literal["INCOME", "EXPENSE"]


class LedgerFile(BaseModel):
    """Top-level schema of the JSON ledger document."""

    model_config = ConfigDict(strict=True, extra="forbid")

    schema_version: int
    transactions: list[LedgerRecord]
