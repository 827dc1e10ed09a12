"""Rich terminal rendering for the finance views.

Every renderer takes the transaction collection, asks :mod:`finance_flow.aggregate`
for fresh derived values and prints with a caller-supplied
:class:`rich.console.Console`. Nothing is cached between renders.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .aggregate import (
    compute_category_breakdown,
    compute_daily_series,
    compute_totals,
    rank_categories,
    recent_activity,
)
from .models import FinancialInsight, Totals, Transaction, TransactionType
from .views import (
    CaptureView,
    DashboardView,
    InsightsView,
    PremiumView,
    View,
    display_rank,
    format_day,
    score_style,
    series_labels,
)

CURRENCY = "฿"
BAR_WIDTH = 30
RECENT_LIMIT = 6
# Generated ids are UUIDs; the list view shows a prefix.
ID_PREFIX = 8

PREMIUM_FEATURES: tuple[str, ...] = (
    "Future Cashflow Forecasting",
    "Couple/Family Account Sync",
    "Investment Portfolio Tracking",
    "Unlimited AI Receipt Scans",
    "Export to CSV/Excel",
    "Custom Category Rules",
)


def format_money(amount: Decimal) -> str:
    """Thousands-separated amount; cents only when the value has them."""

    if amount == amount.to_integral_value():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


def signed_money(tx: Transaction) -> str:
    sign = "+" if tx.type is TransactionType.INCOME else "-"
    return f"{sign}{CURRENCY}{format_money(tx.amount)}"


def _bar(value: Decimal, peak: Decimal) -> str:
    if peak <= 0:
        return ""
    width = int((abs(value) / peak) * BAR_WIDTH)
    return "█" * max(width, 1 if value else 0)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def totals_table(totals: Totals) -> Table:
    grid = Table.grid(expand=True, padding=(0, 2))
    for _ in range(3):
        grid.add_column(ratio=1)
    balance_style = "bold green" if totals.net_balance >= 0 else "bold red"
    grid.add_row(
        Panel(
            Text(f"{CURRENCY}{format_money(totals.net_balance)}", style=balance_style),
            title="Total Balance",
            border_style="cyan",
        ),
        Panel(
            Text(f"+{CURRENCY}{format_money(totals.total_income)}", style="green"),
            title="Income",
            border_style="green",
        ),
        Panel(
            Text(f"-{CURRENCY}{format_money(totals.total_expense)}", style="red"),
            title="Expense",
            border_style="red",
        ),
    )
    return grid


def money_flow_panel(transactions: Sequence[Transaction]) -> Panel:
    points = compute_daily_series(transactions)
    if not points:
        body: Table | Text = Text("Start tracking to see your growth curve!", style="dim")
    else:
        peak = max(abs(p.running_balance) for p in points)
        table = Table(show_header=True, header_style="bold", box=None, expand=True)
        table.add_column("Date", no_wrap=True)
        table.add_column("Net Balance", justify="right", no_wrap=True)
        table.add_column("", ratio=1)
        table.add_column("Entries", justify="right")
        for label, point in zip(series_labels(points), points, strict=True):
            style = "green" if point.running_balance >= 0 else "red"
            table.add_row(
                label,
                f"{CURRENCY}{format_money(point.running_balance)}",
                Text(_bar(point.running_balance, peak), style=style),
                str(len(point.transactions)),
            )
        body = table
    return Panel(body, title="Money Flow", border_style="green")


def recent_activity_panel(transactions: Sequence[Transaction]) -> Panel:
    recent = recent_activity(transactions, limit=RECENT_LIMIT)
    if not recent:
        return Panel(Text("No transactions found.", style="dim"), title="Recent Activity")
    with_year = len({tx.date.year for tx in recent}) > 1
    table = Table(show_header=False, box=None, expand=True)
    table.add_column("Merchant")
    table.add_column("Detail", style="dim")
    table.add_column("Amount", justify="right", no_wrap=True)
    for tx in recent:
        table.add_row(
            Text(tx.merchant or tx.description),
            Text(f"{tx.category} • {format_day(tx.date, with_year=with_year)}"),
            Text(signed_money(tx), style="green" if tx.type is TransactionType.INCOME else ""),
        )
    return Panel(table, title="Recent Activity")


def categories_panel(transactions: Sequence[Transaction]) -> Panel:
    ranked = rank_categories(compute_category_breakdown(transactions))
    if not ranked:
        return Panel(Text("No expense data", style="dim"), title="Where money goes")
    peak = ranked[0].total_expense
    table = Table(show_header=False, box=None, expand=True)
    table.add_column("Category", no_wrap=True)
    table.add_column("", ratio=1)
    table.add_column("Total", justify="right", no_wrap=True)
    for entry in ranked:
        table.add_row(
            Text(entry.category),
            Text(_bar(entry.total_expense, peak), style="magenta"),
            f"{CURRENCY}{format_money(entry.total_expense)}",
        )
    return Panel(table, title="Where money goes")


def insight_panel(
    transactions: Sequence[Transaction], insight: FinancialInsight | None
) -> Panel | None:
    """The AI coach card; ``None`` when there is nothing to show yet."""

    if not transactions:
        return Panel(
            Text("Start adding transactions to unlock AI insights!", justify="center"),
            border_style="magenta",
        )
    if insight is None:
        return None

    score = insight.health_score
    header = Text()
    header.append("Health Score ", style="dim")
    header.append(f"{score:g}", style=f"bold {score_style(score)}")
    header.append("/100", style="dim")
    header.append(f"   Rank: {display_rank(insight)}", style="bold")
    header.append(f"   Trend: {insight.spending_trend}", style="dim")

    body = Group(
        header,
        Text(""),
        Text("WEEKLY SUMMARY", style="bold magenta"),
        Text(insight.summary),
        Text(""),
        Text("SMART TIP", style="bold magenta"),
        Text(f'"{insight.savings_tip}"', style="italic"),
    )
    return Panel(body, title="AI Financial Coach", border_style="magenta")


def premium_panel() -> Panel:
    lines = Text()
    lines.append("Take your wealth management to the next level with our advanced AI features.\n\n")
    for feature in PREMIUM_FEATURES:
        lines.append("✓ ", style="green")
        lines.append(f"{feature}\n")
    lines.append("\nStart 7-Day Free Trial", style="bold green")
    lines.append("\nNo credit card required for trial.", style="dim")
    return Panel(lines, title="Unlock Finance Flow Premium", border_style="yellow")


def transaction_panel(tx: Transaction, *, title: str = "Transaction") -> Panel:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Type", tx.type.value)
    table.add_row("Amount", signed_money(tx))
    table.add_row("Category", Text(tx.category))
    table.add_row("Merchant", Text(tx.merchant))
    table.add_row("Date", tx.date.isoformat())
    table.add_row("Description", Text(tx.description))
    return Panel(table, title=title, border_style="cyan")


def transactions_table(transactions: Sequence[Transaction]) -> Table:
    """All transactions in chronological order (stable for same-day entries)."""

    table = Table(title="Transactions", header_style="bold")
    table.add_column("Date", no_wrap=True)
    table.add_column("Merchant", min_width=8)
    table.add_column("Description", min_width=8)
    table.add_column("Category", min_width=8)
    table.add_column("Amount", justify="right", no_wrap=True)
    table.add_column("ID", style="dim", no_wrap=True)
    for tx in sorted(transactions, key=lambda t: t.date):
        table.add_row(
            tx.date.isoformat(),
            Text(tx.merchant),
            Text(tx.description),
            Text(tx.category),
            Text(signed_money(tx), style="green" if tx.type is TransactionType.INCOME else "red"),
            Text(tx.id[:ID_PREFIX]),
        )
    return table


# ---------------------------------------------------------------------------
# View dispatch
# ---------------------------------------------------------------------------


def render_dashboard(
    view: DashboardView,
    transactions: Sequence[Transaction],
    *,
    console: Console,
    insight: FinancialInsight | None = None,
) -> None:
    if view.show_insight:
        card = insight_panel(transactions, insight)
        if card is not None:
            console.print(card)
    console.print(totals_table(compute_totals(transactions)))
    console.print(money_flow_panel(transactions))
    console.print(recent_activity_panel(transactions))
    console.print(categories_panel(transactions))


def render_insights(
    transactions: Sequence[Transaction],
    *,
    console: Console,
    insight: FinancialInsight | None = None,
) -> None:
    console.print(Text("Detailed Analysis", style="bold"))
    card = insight_panel(transactions, insight)
    if card is not None:
        console.print(card)
    console.print(money_flow_panel(transactions))


def render_capture(view: CaptureView, *, console: Console) -> None:
    console.print(transaction_panel(view.transaction, title="Captured"))
    if view.warning:
        console.print(f"[yellow]Warning:[/yellow] {escape(view.warning)}")


def render_view(
    view: View,
    transactions: Sequence[Transaction],
    *,
    console: Console,
    insight: FinancialInsight | None = None,
) -> None:
    """Render one view state; each variant has exactly one renderer."""

    match view:
        case DashboardView():
            render_dashboard(view, transactions, console=console, insight=insight)
        case InsightsView():
            render_insights(transactions, console=console, insight=insight)
        case PremiumView():
            console.print(premium_panel())
        case CaptureView():
            render_capture(view, console=console)
        case _:
            raise TypeError(f"unknown view: {view!r}")


__all__ = [
    "categories_panel",
    "format_money",
    "insight_panel",
    "money_flow_panel",
    "premium_panel",
    "recent_activity_panel",
    "render_view",
    "totals_table",
    "transaction_panel",
    "transactions_table",
]
