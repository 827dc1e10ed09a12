"""Pytest configuration for test isolation.

- Puts the workspace ``packages/`` dir on ``sys.path`` so ``finance_flow`` is
  importable without installation.
- Points ``FINANCE_FLOW_STORE`` at a per-test temporary file so no test reads
  or writes a ledger in the working tree, and clears ``DATABASE_URL`` so the
  CLI never picks up a real database.
- Resets the package logger after each test; the CLI root callback attaches a
  handler bound to the test runner's stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
# Ensure `packages/` precedes the repo root on sys.path so local packages resolve first.
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]


@pytest.fixture(autouse=True)
def _isolate_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Force a per-test ledger path so tests don't share on-disk state."""

    store_path = tmp_path / "ledger.json"
    monkeypatch.setenv("FINANCE_FLOW_STORE", os.fspath(store_path))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("FINANCE_FLOW_CAPTURE_CONCURRENCY", raising=False)
    monkeypatch.delenv("FINANCE_FLOW_MODEL", raising=False)
    return store_path


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    from finance_flow import logging_setup

    logger = logging.getLogger("finance_flow")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    logging_setup._CONFIGURED = False


@pytest.fixture
def ledger_path(_isolate_store: Path) -> Path:
    return _isolate_store
