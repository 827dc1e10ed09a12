"""Spending insight: summary, savings tip, trend and health score from the model.

:func:`generate_insight` performs one request. :class:`InsightFeed` owns the
"latest insight" shown by the presentation layer and guards it against
out-of-order responses: every fetch draws a sequence number, and only the
response carrying the most recently issued number may replace the current
insight.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import ValidationError

from . import llm, prompting
from .errors import InsightError
from .logging_setup import get_logger
from .models import FinancialInsight, Transaction

_logger = get_logger("finance_flow.insights")


def generate_insight(
    transactions: Sequence[Transaction], *, client: Any | None = None
) -> FinancialInsight:
    """Request a :class:`FinancialInsight` for the most recent transactions.

    Only a bounded window (see :data:`prompting.INSIGHT_MAX_TRANSACTIONS`) is
    sent. Raises :class:`InsightError` on any failure, and for an empty
    collection.
    """

    txs = list(transactions)
    if not txs:
        raise InsightError("No transactions to analyze.")

    try:
        raw = llm.request_json(
            client if client is not None else llm.create_client(),
            event="insight",
            instructions=prompting.build_insight_instructions(),
            user_input=prompting.build_insight_input(txs),
            response_format=prompting.build_insight_response_format(),
        )
        insight = FinancialInsight.model_validate(raw)
    except ValidationError as e:
        _logger.error("insight:invalid_output errors=%d", e.error_count())
        raise InsightError(f"Insight response was invalid: {e}") from e
    except Exception as e:  # noqa: BLE001 - any SDK/network failure is an insight failure
        _logger.error("insight:failed error=%s", e.__class__.__name__)
        raise InsightError(f"Failed to generate insight: {e}") from e

    _logger.info(
        "insight:done score=%.1f trend=%s window=%d",
        insight.health_score,
        insight.spending_trend,
        min(len(txs), prompting.INSIGHT_MAX_TRANSACTIONS),
    )
    return insight


type InsightFetcher = Callable[[Sequence[Transaction]], FinancialInsight]


class InsightFeed:
    """Holds the current insight and discards stale responses.

    Parameters
    ----------
    fetch:
        Callable producing an insight for a transaction collection. Defaults
        to :func:`generate_insight`. Tests inject stubs here.

    Thread safety: sequence issue and acceptance are serialized by a lock, the
    fetch itself runs outside it so overlapping requests are possible; the
    last *issued* request wins, not the last to complete.
    """

    def __init__(self, fetch: InsightFetcher | None = None) -> None:
        self._fetch: InsightFetcher = fetch or generate_insight
        self._lock = threading.Lock()
        self._issued = 0
        self._current: FinancialInsight | None = None
        self._last_size: int | None = None

    @property
    def current(self) -> FinancialInsight | None:
        with self._lock:
            return self._current

    @property
    def latest_issued(self) -> int:
        with self._lock:
            return self._issued

    def issue(self) -> int:
        """Reserve the next sequence number for a new request."""

        with self._lock:
            self._issued += 1
            return self._issued

    def offer(self, seq: int, insight: FinancialInsight) -> bool:
        """Accept ``insight`` only if ``seq`` is the most recently issued number."""

        with self._lock:
            if seq != self._issued:
                _logger.debug("insight:stale seq=%d latest=%d", seq, self._issued)
                return False
            self._current = insight
            return True

    def refresh(self, transactions: Sequence[Transaction]) -> FinancialInsight | None:
        """Fetch a fresh insight now.

        Returns the accepted insight, or ``None`` when a newer request was
        issued meanwhile. A failure of the latest request raises
        :class:`InsightError` and leaves the current insight untouched; a
        failure of a superseded request is dropped.
        """

        seq = self.issue()
        try:
            insight = self._fetch(transactions)
        except InsightError:
            if seq != self.latest_issued:
                _logger.debug("insight:stale_failure seq=%d", seq)
                return None
            raise
        return insight if self.offer(seq, insight) else None

    def on_collection_change(
        self, transactions: Sequence[Transaction]
    ) -> FinancialInsight | None:
        """Refresh when the collection size changed since the last trigger.

        Empty collections never trigger a request.
        """

        size = len(transactions)
        with self._lock:
            if size == self._last_size:
                return self._current
            self._last_size = size
        if size == 0:
            return None
        return self.refresh(transactions)
