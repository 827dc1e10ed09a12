"""SQLAlchemy-backed ledger for :class:`~finance_flow.store.TransactionStore`.

Selected with ``--database-url`` or ``DATABASE_URL``. The table is created on
first use. Each write replaces the whole ledger inside one transaction so the
table always mirrors the in-memory collection, in insertion order (kept in the
``position`` column).

Usage
-----
backend = SqlBackend("sqlite:///finance_flow.db")
store = TransactionStore(backend)
"""

from __future__ import annotations

import datetime as dt
import os
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from sqlalchemy import Date, Integer, String, Text, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .logging_setup import get_logger
from .models import Transaction

_logger = get_logger("finance_flow.sql_store")


class Base(DeclarativeBase):
    pass


class FfTransaction(Base):
    __tablename__ = "ff_transactions"

    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Decimal string, same as the JSON ledger; no fixed scale.
    amount: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    merchant: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(7), nullable=False)


# One engine per URL for the life of the process.
_ENGINES: dict[str, Engine] = {}
_SESSION_MAKERS: dict[str, sessionmaker[Session]] = {}


def database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database backend")
    return url


def get_engine(url: str) -> Engine:
    """Return the shared engine for ``url``, creating it (and the table) on first use."""

    engine = _ENGINES.get(url)
    if engine is None:
        engine = create_engine(url, pool_pre_ping=True)
        Base.metadata.create_all(engine)
        _ENGINES[url] = engine
        _SESSION_MAKERS[url] = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
        _logger.debug("sql:engine_created dialect=%s", engine.dialect.name)
    return engine


@contextmanager
def session_scope(url: str) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    get_engine(url)
    session = _SESSION_MAKERS[url]()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    """Dispose and forget all cached engines."""

    for engine in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()
    _SESSION_MAKERS.clear()


class SqlBackend:
    name = "sql"

    def __init__(self, url: str | None = None) -> None:
        self.url = database_url(url)

    def read(self) -> list[Transaction] | None:
        with session_scope(self.url) as s:
            rows = s.scalars(select(FfTransaction).order_by(FfTransaction.position)).all()
            if not rows:
                return None
            return [
                Transaction(
                    id=r.id,
                    amount=r.amount,
                    category=r.category,
                    date=r.date,
                    description=r.description,
                    merchant=r.merchant,
                    type=r.type,
                )
                for r in rows
            ]

    def write(self, transactions: Sequence[Transaction]) -> None:
        with session_scope(self.url) as s:
            s.execute(delete(FfTransaction))
            s.add_all(
                FfTransaction(
                    position=i,
                    id=tx.id,
                    amount=str(tx.amount),
                    category=tx.category,
                    date=tx.date,
                    description=tx.description,
                    merchant=tx.merchant,
                    type=tx.type.value,
                )
                for i, tx in enumerate(transactions)
            )


__all__ = [
    "Base",
    "FfTransaction",
    "SqlBackend",
    "database_url",
    "dispose_engines",
    "get_engine",
    "session_scope",
]
