"""View states and presentation policy shared by the renderer and the CLI.

Each screen is one variant of the :data:`View` union; :func:`finance_flow.render.render_view`
dispatches on the variant with one renderer per tag.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from .models import DailyPoint, FinancialInsight, Transaction


@dataclass(frozen=True, slots=True)
class DashboardView:
    show_insight: bool = False
    kind: Literal["dashboard"] = "dashboard"


@dataclass(frozen=True, slots=True)
class InsightsView:
    kind: Literal["insights"] = "insights"


@dataclass(frozen=True, slots=True)
class PremiumView:
    kind: Literal["premium"] = "premium"


@dataclass(frozen=True, slots=True)
class CaptureView:
    """Confirmation screen for a freshly captured transaction.

    ``warning`` carries a non-fatal problem to show with it (e.g. the ledger
    could not be saved).
    """

    transaction: Transaction
    warning: str | None = None
    kind: Literal["capture"] = "capture"


type View = DashboardView | InsightsView | PremiumView | CaptureView


# ---------------------------------------------------------------------------
# Health score policy
# ---------------------------------------------------------------------------

# (minimum score, label), highest first.
RANK_TIERS: tuple[tuple[int, str], ...] = (
    (80, "Wealth Wizard"),
    (50, "Smart Saver"),
    (0, "Novice Spender"),
)


def rank_for_score(score: float) -> str:
    for floor, label in RANK_TIERS:
        if score >= floor:
            return label
    return RANK_TIERS[-1][1]


def display_rank(insight: FinancialInsight) -> str:
    """The model's rank when given, otherwise the tier for its score."""

    return insight.financial_rank or rank_for_score(insight.health_score)


def score_style(score: float) -> str:
    """Rich colour name for a health score."""

    if score > 70:
        return "green"
    if score > 50:
        return "yellow"
    return "red"


# ---------------------------------------------------------------------------
# Date labels
# ---------------------------------------------------------------------------


def format_day(day: dt.date, *, with_year: bool = False) -> str:
    """``Oct 5``, or ``Oct 5, 2023`` when ``with_year`` is set."""

    label = f"{day.strftime('%b')} {day.day}"
    return f"{label}, {day.year}" if with_year else label


def series_labels(points: Sequence[DailyPoint]) -> list[str]:
    """Display labels for a daily series; years are shown only when it spans several."""

    with_year = len({p.date.year for p in points}) > 1
    return [format_day(p.date, with_year=with_year) for p in points]


__all__ = [
    "RANK_TIERS",
    "CaptureView",
    "DashboardView",
    "InsightsView",
    "PremiumView",
    "View",
    "display_rank",
    "format_day",
    "rank_for_score",
    "score_style",
    "series_labels",
]
