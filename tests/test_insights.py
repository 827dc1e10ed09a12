from __future__ import annotations

import threading

import pytest

from finance_flow.errors import InsightError
from finance_flow.insights import InsightFeed, generate_insight
from finance_flow.models import FinancialInsight, Transaction
from finance_flow.prompting import INSIGHT_MAX_TRANSACTIONS
from finance_flow.store import SEED_TRANSACTIONS
from tests.helpers.openai_stub import OpenAIStub, extract_embedded_transactions, insight_reply


def _many(n: int) -> list[Transaction]:
    # Dates deliberately out of order in the input.
    return [
        Transaction(
            id=f"t{i}",
            amount=i + 1,
            category="Food",
            date=(
                f"2024-{(i % 12) + 1:02d}-{(i % 28) + 1:02d}"
                if i % 2
                else f"2023-01-{(i % 28) + 1:02d}"
            ),
            description="x",
            merchant="y",
            type="EXPENSE",
        )
        for i in range(n)
    ]


def _insight(score: float, summary: str = "s") -> FinancialInsight:
    return FinancialInsight.model_validate(insight_reply(score, summary=summary))


def test_generate_insight_embeds_transactions_and_parses_reply():
    stub = OpenAIStub([insight_reply(72, rank="Smart Saver")])
    insight = generate_insight(list(SEED_TRANSACTIONS), client=stub)

    assert insight.health_score == 72
    assert insight.financial_rank == "Smart Saver"
    (call,) = stub.calls
    assert "Novice Spender" in call["instructions"]
    embedded = extract_embedded_transactions(call["input"])
    assert [row["id"] for row in embedded] == ["1", "2", "3", "4"]
    assert embedded[0]["amount"] == 35000
    assert call["text"]["format"]["name"] == "financial_insight"


def test_only_the_most_recent_window_is_sent():
    txs = _many(45)
    stub = OpenAIStub([insight_reply()])
    generate_insight(txs, client=stub)

    embedded = extract_embedded_transactions(stub.calls[0]["input"])
    assert len(embedded) == INSIGHT_MAX_TRANSACTIONS
    newest = sorted(txs, key=lambda t: t.date)[-INSIGHT_MAX_TRANSACTIONS:]
    assert [row["id"] for row in embedded] == [t.id for t in newest]


def test_empty_collection_is_an_error_without_a_call():
    stub = OpenAIStub([insight_reply()])
    with pytest.raises(InsightError):
        generate_insight([], client=stub)
    assert stub.calls == []


@pytest.mark.parametrize(
    "reply",
    ["oops", insight_reply(150), {"summary": "x"}, ConnectionError("down")],
)
def test_failures_surface_as_insight_error(reply):
    with pytest.raises(InsightError):
        generate_insight(list(SEED_TRANSACTIONS), client=OpenAIStub([reply]))


# ---- InsightFeed ------------------------------------------------------------------


def test_stale_response_is_discarded():
    feed = InsightFeed(fetch=lambda txs: _insight(10))
    first = feed.issue()
    second = feed.issue()

    assert feed.offer(second, _insight(80, "new")) is True
    assert feed.offer(first, _insight(20, "old")) is False
    assert feed.current is not None
    assert feed.current.summary == "new"


def test_overlapping_refreshes_keep_latest_issued():
    slow_started = threading.Event()
    release_slow = threading.Event()
    results: dict[str, FinancialInsight | None] = {}

    def _fetch(txs):
        if len(txs) == 1:
            slow_started.set()
            release_slow.wait(timeout=5)
            return _insight(30, "slow")
        return _insight(90, "fast")

    feed = InsightFeed(fetch=_fetch)
    txs = list(SEED_TRANSACTIONS)

    worker = threading.Thread(target=lambda: results.setdefault("slow", feed.refresh(txs[:1])))
    worker.start()
    assert slow_started.wait(timeout=5)
    results["fast"] = feed.refresh(txs)
    release_slow.set()
    worker.join(timeout=5)

    assert results["fast"] is not None and results["fast"].summary == "fast"
    assert results["slow"] is None
    assert feed.current.summary == "fast"


def test_failure_of_latest_request_raises_and_keeps_current():
    calls = {"n": 0}

    def _fetch(txs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise InsightError("model unavailable")
        return _insight(55)

    feed = InsightFeed(fetch=_fetch)
    txs = list(SEED_TRANSACTIONS)
    feed.refresh(txs)
    with pytest.raises(InsightError):
        feed.refresh(txs)
    assert feed.current.health_score == 55


def test_collection_change_triggers_only_on_size_change():
    calls: list[int] = []

    def _fetch(txs):
        calls.append(len(txs))
        return _insight(60)

    feed = InsightFeed(fetch=_fetch)
    txs = list(SEED_TRANSACTIONS)

    assert feed.on_collection_change(txs) is not None
    assert feed.on_collection_change(txs) is not None
    assert calls == [4]

    assert feed.on_collection_change(txs[:3]) is not None
    assert calls == [4, 3]


def test_empty_collection_never_triggers():
    calls: list[int] = []
    feed = InsightFeed(fetch=lambda txs: calls.append(1) or _insight(1))
    assert feed.on_collection_change([]) is None
    assert calls == []
