"""Exception types raised by the collaborators around the aggregator.

Aggregation itself never raises for well-formed input; these cover the model
calls and persistence.
"""

from __future__ import annotations


class FinanceFlowError(RuntimeError):
    """Base class for errors surfaced to the user by ``finance_flow``."""


class CaptureError(FinanceFlowError):
    """Turning free-form input into a transaction failed; nothing was recorded."""


class InsightError(FinanceFlowError):
    """The insight request failed or returned an unusable payload."""


class PersistenceError(FinanceFlowError):
    """Loading or saving the ledger failed.

    Raised after an in-memory append has already taken effect; the append is
    not rolled back.
    """
