"""The canonical transaction collection and its persistence backends.

:class:`TransactionStore` is the one object the application context owns and
hands to the presentation layer. It keeps the collection in memory and
rewrites the whole ledger through a backend after every append:

- ``load()`` reads the ledger once; a missing ledger yields the seed data and
  an unreadable one is logged and also falls back to the seed data.
- ``append(tx)`` adds to memory first, then persists. A persistence failure
  raises :class:`~finance_flow.errors.PersistenceError` but the in-memory
  append stands.
- ``all()`` returns the collection in insertion order.

The ledger is append-only; there is no update or delete.

Backends implement ``read() -> list[Transaction] | None`` (``None`` meaning
nothing persisted yet) and ``write(transactions)``. This module ships the JSON
document backend and an in-memory one; the SQL backend lives in
:mod:`finance_flow.sql_store`.

JSON layout::

    {
      "schema_version": 1,
      "transactions": [
        {"id": "...", "amount": "1500", "category": "Utilities",
         "date": "2023-10-05", "description": "...", "merchant": "...",
         "type": "EXPENSE"}
      ]
    }

Atomicity: writes target ``.tmp`` first and then ``os.replace`` into place.
"""

from __future__ import annotations

import contextlib
import json
import os
import threading
from collections.abc import Iterable, Sequence
from os import PathLike
from pathlib import Path
from typing import Protocol

from .errors import PersistenceError
from .logging_setup import get_logger
from .models import LedgerFile, LedgerRecord, Transaction, TransactionType

# Bump only when the on-disk JSON shape changes.
SCHEMA_VERSION: int = 1

_DEFAULT_FILENAME = "finance_flow.json"

_logger = get_logger("finance_flow.store")


SEED_TRANSACTIONS: tuple[Transaction, ...] = (
    Transaction(
        id="1",
        amount=35000,
        category="Salary",
        date="2023-10-01",
        description="Monthly Salary",
        merchant="Company Inc",
        type=TransactionType.INCOME,
    ),
    Transaction(
        id="2",
        amount=1500,
        category="Utilities",
        date="2023-10-05",
        description="Electric Bill",
        merchant="MEA",
        type=TransactionType.EXPENSE,
    ),
    Transaction(
        id="3",
        amount=250,
        category="Food",
        date="2023-10-06",
        description="Lunch",
        merchant="KFC",
        type=TransactionType.EXPENSE,
    ),
    Transaction(
        id="4",
        amount=5000,
        category="Investment",
        date="2023-10-07",
        description="Stock Purchase",
        merchant="Broker",
        type=TransactionType.EXPENSE,
    ),
)
"""Sample ledger used when nothing has been persisted yet."""


class StoreBackend(Protocol):
    name: str

    def read(self) -> list[Transaction] | None: ...

    def write(self, transactions: Sequence[Transaction]) -> None: ...


# ----------------------------------------------------------------------------
# Backends
# ----------------------------------------------------------------------------


def default_store_path() -> Path:
    """Return the JSON ledger path.

    Default: ``./finance_flow.json`` under the current working directory.
    Override: ``FINANCE_FLOW_STORE`` environment variable.
    """

    override = os.getenv("FINANCE_FLOW_STORE")
    if override and override.strip():
        return Path(override).expanduser().resolve()
    return (Path.cwd() / _DEFAULT_FILENAME).resolve()


class JsonFileBackend:
    """Whole-document JSON ledger on the local filesystem."""

    name = "json"

    def __init__(self, path: str | PathLike[str] | None = None) -> None:
        self.path = Path(path) if path is not None else default_store_path()

    def read(self) -> list[Transaction] | None:
        if not self.path.exists():
            return None
        text = self.path.read_text(encoding="utf-8")
        # Shape errors raise pydantic.ValidationError (a ValueError).
        doc = LedgerFile.model_validate_json(text)
        if doc.schema_version != SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported ledger schema_version {doc.schema_version} "
                f"(expected {SCHEMA_VERSION}) in {self.path}"
            )
        return [Transaction.from_record(rec.model_dump()) for rec in doc.transactions]

    def write(self, transactions: Sequence[Transaction]) -> None:
        doc = LedgerFile(
            schema_version=SCHEMA_VERSION,
            transactions=[LedgerRecord(**tx.to_record()) for tx in transactions],
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(
                json.dumps(doc.model_dump(mode="json"), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            os.replace(tmp, self.path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            raise


class MemoryBackend:
    """Process-local backend; ``written`` keeps the last persisted snapshot."""

    name = "memory"

    def __init__(self, initial: Iterable[Transaction] | None = None) -> None:
        self.written: list[Transaction] | None = list(initial) if initial is not None else None
        self.writes = 0

    def read(self) -> list[Transaction] | None:
        return list(self.written) if self.written is not None else None

    def write(self, transactions: Sequence[Transaction]) -> None:
        self.written = list(transactions)
        self.writes += 1


# ----------------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------------


class TransactionStore:
    """In-memory canonical collection backed by a persistence backend."""

    def __init__(
        self,
        backend: StoreBackend,
        *,
        seed: Iterable[Transaction] = SEED_TRANSACTIONS,
    ) -> None:
        self.backend = backend
        self._seed: tuple[Transaction, ...] = tuple(seed)
        self._items: list[Transaction] = []
        self._loaded = False
        self._lock = threading.Lock()

    def load(self) -> list[Transaction]:
        """Read the ledger into memory and return a copy of it.

        Never raises for backend problems: those are logged and the seed data
        is used instead.
        """

        try:
            persisted = self.backend.read()
        except Exception as e:  # noqa: BLE001 - a broken ledger must not block startup
            _logger.error(
                "store:load_failed backend=%s error=%s; using seed data",
                self.backend.name,
                e,
            )
            persisted = None
            source = "seed"
        else:
            source = "backend" if persisted is not None else "seed"

        with self._lock:
            self._items = list(persisted) if persisted is not None else list(self._seed)
            self._loaded = True
            items = list(self._items)
        _logger.info(
            "store:loaded backend=%s source=%s count=%d", self.backend.name, source, len(items)
        )
        return items

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def all(self) -> tuple[Transaction, ...]:
        self._ensure_loaded()
        with self._lock:
            return tuple(self._items)

    def __len__(self) -> int:
        return len(self.all())

    def append(self, tx: Transaction) -> None:
        """Append one transaction and persist the whole ledger."""

        self.append_many([tx])

    def append_many(self, transactions: Iterable[Transaction]) -> None:
        """Append several transactions in order with a single persistence write.

        Validation happens before any mutation: non-transactions and ids that
        already exist (or repeat within the batch) raise ``ValueError`` and
        leave the collection unchanged.
        """

        new = list(transactions)
        for tx in new:
            if not isinstance(tx, Transaction):
                raise TypeError(f"expected Transaction, got {type(tx).__name__}")
        if not new:
            return

        self._ensure_loaded()
        with self._lock:
            seen = {tx.id for tx in self._items}
            for tx in new:
                if tx.id in seen:
                    raise ValueError(f"duplicate transaction id: {tx.id!r}")
                seen.add(tx.id)
            self._items.extend(new)
            snapshot = list(self._items)

        try:
            self.backend.write(snapshot)
        except Exception as e:  # noqa: BLE001 - report, keep the in-memory append
            _logger.error(
                "store:persist_failed backend=%s count=%d error=%s",
                self.backend.name,
                len(snapshot),
                e,
            )
            raise PersistenceError(f"Failed to save transactions: {e}") from e
        _logger.info(
            "store:appended backend=%s added=%d total=%d",
            self.backend.name,
            len(new),
            len(snapshot),
        )

    def categories(self) -> list[str]:
        """Known category labels in first-seen order."""

        return list(dict.fromkeys(tx.category for tx in self.all()))


__all__ = [
    "SCHEMA_VERSION",
    "SEED_TRANSACTIONS",
    "JsonFileBackend",
    "MemoryBackend",
    "StoreBackend",
    "TransactionStore",
    "default_store_path",
]
