from __future__ import annotations

import json
import logging
from decimal import Decimal

import pytest

from finance_flow.aggregate import compute_totals
from finance_flow.errors import PersistenceError
from finance_flow.models import Transaction
from finance_flow.sql_store import SqlBackend, dispose_engines
from finance_flow.store import (
    SEED_TRANSACTIONS,
    JsonFileBackend,
    MemoryBackend,
    TransactionStore,
    default_store_path,
)


def _tx(tx_id: str, amount="99.90", date="2023-10-08", type_="EXPENSE") -> Transaction:
    return Transaction(
        id=tx_id,
        amount=amount,
        category="Transport",
        date=date,
        description="BTS top-up",
        merchant="BTS",
        type=type_,
    )


class _FailingWrites(MemoryBackend):
    name = "failing"

    def write(self, transactions):
        raise OSError("disk full")


class _FailingReads(MemoryBackend):
    name = "broken"

    def read(self):
        raise RuntimeError("connection refused")


@pytest.fixture
def sqlite_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'ledger.db'}"
    yield url
    dispose_engines()


# ---- Load ---------------------------------------------------------------------------


def test_missing_document_loads_seed(ledger_path):
    store = TransactionStore(JsonFileBackend(ledger_path))
    assert store.load() == list(SEED_TRANSACTIONS)
    assert not ledger_path.exists()


def test_corrupt_document_falls_back_to_seed(ledger_path, caplog):
    ledger_path.write_text("{not json", encoding="utf-8")
    store = TransactionStore(JsonFileBackend(ledger_path))
    with caplog.at_level(logging.ERROR, logger="finance_flow"):
        items = store.load()
    assert items == list(SEED_TRANSACTIONS)
    assert any("store:load_failed" in r.getMessage() for r in caplog.records)


def test_wrong_schema_version_falls_back_to_seed(ledger_path):
    ledger_path.write_text(json.dumps({"schema_version": 99, "transactions": []}), encoding="utf-8")
    assert TransactionStore(JsonFileBackend(ledger_path)).all() == SEED_TRANSACTIONS


def test_backend_error_falls_back_to_seed():
    assert TransactionStore(_FailingReads()).load() == list(SEED_TRANSACTIONS)


def test_custom_seed_and_empty_persisted_ledger():
    assert TransactionStore(MemoryBackend(), seed=[]).all() == ()
    # An explicitly persisted empty ledger is not replaced by the seed.
    assert TransactionStore(MemoryBackend(initial=[])).all() == ()


def test_default_store_path_honors_env(ledger_path, monkeypatch, tmp_path):
    assert default_store_path() == ledger_path.resolve()
    monkeypatch.delenv("FINANCE_FLOW_STORE")
    monkeypatch.chdir(tmp_path)
    assert default_store_path() == (tmp_path / "finance_flow.json").resolve()


# ---- Append / persist ------------------------------------------------------------------


def test_append_persists_whole_document(ledger_path):
    store = TransactionStore(JsonFileBackend(ledger_path))
    store.append(_tx("n1"))

    doc = json.loads(ledger_path.read_text(encoding="utf-8"))
    assert doc["schema_version"] == 1
    assert [r["id"] for r in doc["transactions"]] == ["1", "2", "3", "4", "n1"]
    assert doc["transactions"][-1]["amount"] == "99.90"
    assert not ledger_path.with_suffix(".json.tmp").exists()

    reloaded = TransactionStore(JsonFileBackend(ledger_path)).all()
    assert reloaded == store.all()
    assert reloaded[-1].amount == Decimal("99.90")


def test_append_survives_write_failure_in_memory():
    store = TransactionStore(_FailingWrites())
    with pytest.raises(PersistenceError, match="disk full"):
        store.append(_tx("n1"))
    assert [t.id for t in store.all()][-1] == "n1"
    assert len(store) == len(SEED_TRANSACTIONS) + 1


def test_duplicate_ids_are_rejected_before_mutation():
    backend = MemoryBackend()
    store = TransactionStore(backend)
    with pytest.raises(ValueError):
        store.append(_tx("1"))
    with pytest.raises(ValueError):
        store.append_many([_tx("a"), _tx("a")])
    assert store.all() == SEED_TRANSACTIONS
    assert backend.writes == 0


def test_append_rejects_non_transactions():
    store = TransactionStore(MemoryBackend())
    with pytest.raises(TypeError):
        store.append({"id": "x"})  # type: ignore[arg-type]


def test_append_many_writes_once_in_order():
    backend = MemoryBackend(initial=[])
    store = TransactionStore(backend)
    store.append_many([_tx("a"), _tx("b"), _tx("c")])
    assert backend.writes == 1
    assert [t.id for t in backend.written] == ["a", "b", "c"]


def test_all_returns_snapshot():
    store = TransactionStore(MemoryBackend(initial=[]))
    snapshot = store.all()
    store.append(_tx("a"))
    assert snapshot == ()
    assert [t.id for t in store.all()] == ["a"]


def test_categories_first_seen_order():
    store = TransactionStore(MemoryBackend())
    store.append(_tx("a"))
    assert store.categories() == ["Salary", "Utilities", "Food", "Investment", "Transport"]


# ---- SQL backend ----------------------------------------------------------------------


def test_sql_backend_round_trip(sqlite_url):
    store = TransactionStore(SqlBackend(sqlite_url))
    assert store.load() == list(SEED_TRANSACTIONS)

    store.append(_tx("n1", amount="12.34"))
    store.append(_tx("n2", amount=5, type_="INCOME"))

    reloaded = TransactionStore(SqlBackend(sqlite_url)).all()
    assert [t.id for t in reloaded] == ["1", "2", "3", "4", "n1", "n2"]
    assert reloaded[4].amount == Decimal("12.34")
    assert reloaded[5].amount == Decimal(5)
    assert reloaded[5].type.value == "INCOME"


def test_sql_backend_keeps_exact_amounts(sqlite_url):
    store = TransactionStore(SqlBackend(sqlite_url))
    store.append_many([_tx("p1", amount="12.345"), _tx("p2", amount="0.004")])

    reloaded = TransactionStore(SqlBackend(sqlite_url)).all()
    assert [t.amount for t in reloaded[-2:]] == [Decimal("12.345"), Decimal("0.004")]
    assert compute_totals(reloaded) == compute_totals(store.all())


def test_sql_backend_requires_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        SqlBackend()


def test_sql_backend_reads_database_url_env(monkeypatch, sqlite_url):
    monkeypatch.setenv("DATABASE_URL", sqlite_url)
    assert SqlBackend().url == sqlite_url
