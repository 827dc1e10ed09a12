"""Public interface for the ``finance_flow`` package.

This module exposes the aggregation engine, the AI-backed collaborators, the
transaction store and the public models as the stable import surface. There
is no runtime logic here, only symbol re-exports.
"""

from .aggregate import (
    compute_category_breakdown,
    compute_daily_series,
    compute_totals,
    rank_categories,
    recent_activity,
)
from .capture import CaptureOutcome, capture_many, capture_transaction, parse_transaction
from .errors import CaptureError, FinanceFlowError, InsightError, PersistenceError
from .insights import InsightFeed, generate_insight
from .models import (
    CategoryTotal,
    DailyPoint,
    FinancialInsight,
    ParsedTransaction,
    Totals,
    Transaction,
    Transactions,
    TransactionType,
)
from .store import JsonFileBackend, MemoryBackend, TransactionStore

__all__ = [
    # Aggregation
    "compute_totals",
    "compute_daily_series",
    "compute_category_breakdown",
    "rank_categories",
    "recent_activity",
    # Collaborators
    "capture_transaction",
    "capture_many",
    "parse_transaction",
    "CaptureOutcome",
    "generate_insight",
    "InsightFeed",
    # Store
    "TransactionStore",
    "JsonFileBackend",
    "MemoryBackend",
    # Models
    "Transaction",
    "TransactionType",
    "Transactions",
    "DailyPoint",
    "CategoryTotal",
    "Totals",
    "ParsedTransaction",
    "FinancialInsight",
    # Errors
    "FinanceFlowError",
    "CaptureError",
    "InsightError",
    "PersistenceError",
]
