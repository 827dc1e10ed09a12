"""CLI for the ``finance_flow`` package.

The Typer app is the application context: its root callback loads ``.env``
(without overriding already-set variables), configures logging and builds the
one :class:`~finance_flow.store.TransactionStore` every command works on.
Business logic lives in :mod:`finance_flow.aggregate`, :mod:`finance_flow.capture`
and :mod:`finance_flow.insights`; this module only wires inputs to them and
renders the results.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from typer.models import ArgumentInfo, OptionInfo

from .capture import capture_many, capture_transaction, load_image
from .errors import CaptureError, InsightError, PersistenceError
from .insights import InsightFeed
from .logging_setup import configure_logging, get_logger
from .models import FinancialInsight, Transaction
from .render import render_view, transactions_table
from .sql_store import SqlBackend
from .store import JsonFileBackend, StoreBackend, TransactionStore
from .term_ui import select_category
from .views import CaptureView, DashboardView, InsightsView, PremiumView

_logger = get_logger("finance_flow.cli")


@dataclass
class AppContext:
    store: TransactionStore
    console: Console = field(default_factory=Console)
    err_console: Console = field(default_factory=lambda: Console(stderr=True))
    feed: InsightFeed = field(default_factory=InsightFeed)


def build_backend(store_path: Path | None, database_url: str | None) -> StoreBackend:
    """SQL when a database URL is given (flag or ``DATABASE_URL``), else the JSON document."""

    url = database_url or os.getenv("DATABASE_URL")
    if url:
        return SqlBackend(url)
    return JsonFileBackend(store_path)


def _app(ctx: typer.Context) -> AppContext:
    obj = ctx.obj
    if not isinstance(obj, AppContext):  # pragma: no cover - callback always sets it
        raise RuntimeError("CLI context was not initialized")
    return obj


def _fail(app_ctx: AppContext, message: str) -> typer.Exit:
    app_ctx.err_console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


def _require_api_key(app_ctx: AppContext) -> None:
    if not os.getenv("OPENAI_API_KEY"):
        raise _fail(app_ctx, "OPENAI_API_KEY is not set in the environment.")


def _fetch_insight(app_ctx: AppContext, transactions: list[Transaction]) -> FinancialInsight | None:
    if not transactions:
        return None
    _require_api_key(app_ctx)
    with app_ctx.console.status("Analyzing your spending..."):
        return app_ctx.feed.on_collection_change(transactions)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Finance Flow: track income and expenses, capture transactions from bank "
        "messages or receipts with OpenAI, and get a spending health score. "
        "Loads OPENAI_API_KEY from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
STORE_OPTION: OptionInfo = typer.Option(
    ...,
    "--store",
    help="Path of the JSON ledger (falls back to FINANCE_FLOW_STORE, then ./finance_flow.json).",
    dir_okay=False,
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    ...,
    "--database-url",
    help="Use a SQL database instead of the JSON ledger (falls back to DATABASE_URL).",
)
BATCH_FILE_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Text file with one bank message per line.",
    dir_okay=False,
    file_okay=True,
)


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    store: Annotated[Path | None, STORE_OPTION] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables), configures logging and prepares the
    transaction store shared by all commands.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()

    backend = build_backend(store, database_url)
    _logger.debug("cli:backend name=%s", backend.name)
    ctx.obj = AppContext(store=TransactionStore(backend))


@app.command("dashboard")
def dashboard_cmd(
    ctx: typer.Context,
    insight: bool = typer.Option(False, "--insight", help="Also show the AI coach card."),
) -> None:
    """Totals, money flow, recent activity and where the money goes."""

    app_ctx = _app(ctx)
    transactions = list(app_ctx.store.all())
    current: FinancialInsight | None = None
    if insight:
        try:
            current = _fetch_insight(app_ctx, transactions)
        except InsightError as e:
            # The dashboard itself is still useful without the coach card.
            app_ctx.err_console.print(f"[yellow]Warning:[/yellow] {escape(str(e))}")
    render_view(
        DashboardView(show_insight=insight),
        transactions,
        console=app_ctx.console,
        insight=current,
    )


@app.command("insights")
def insights_cmd(ctx: typer.Context) -> None:
    """Detailed analysis: AI coach card and the money-flow series."""

    app_ctx = _app(ctx)
    transactions = list(app_ctx.store.all())
    try:
        current = _fetch_insight(app_ctx, transactions)
    except InsightError as e:
        raise _fail(app_ctx, str(e)) from e
    render_view(InsightsView(), transactions, console=app_ctx.console, insight=current)


@app.command("premium")
def premium_cmd(ctx: typer.Context) -> None:
    """What the premium plan offers."""

    app_ctx = _app(ctx)
    render_view(PremiumView(), [], console=app_ctx.console)


@app.command("capture")
def capture_cmd(
    ctx: typer.Context,
    text: str | None = typer.Option(None, "--text", "-t", help="Bank SMS or notification text."),
    image: Path | None = typer.Option(
        None, "--image", "-i", help="Receipt or transfer slip image.", dir_okay=False
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Save without confirmation."),
) -> None:
    """Capture one transaction from text and/or an image and save it."""

    app_ctx = _app(ctx)
    if not (text and text.strip()) and image is None:
        raise _fail(app_ctx, "Please provide text or an image.")
    _require_api_key(app_ctx)

    image_bytes: bytes | None = None
    mime = "image/jpeg"
    if image is not None:
        try:
            image_bytes, mime = load_image(image)
        except OSError as e:
            raise _fail(app_ctx, f"Cannot read image {image}: {e}") from e

    try:
        with app_ctx.console.status("AI is analyzing..."):
            tx = capture_transaction(text, image=image_bytes, image_mime_type=mime)
    except CaptureError as e:
        raise _fail(app_ctx, str(e)) from e

    if not yes:
        render_view(CaptureView(transaction=tx), [], console=app_ctx.console)
        category = select_category(app_ctx.store.categories(), default=tx.category)
        if category != tx.category:
            tx = dataclasses.replace(tx, category=category)
        if not typer.confirm("Save this transaction?", default=True):
            app_ctx.console.print("Discarded.")
            return

    warning: str | None = None
    try:
        app_ctx.store.append(tx)
    except PersistenceError as e:
        warning = str(e)
    render_view(CaptureView(transaction=tx, warning=warning), [], console=app_ctx.console)


@app.command("capture-batch")
def capture_batch_cmd(
    ctx: typer.Context,
    file: Annotated[Path, BATCH_FILE_ARGUMENT],
) -> None:
    """Capture every non-empty line of FILE concurrently and save the successes."""

    app_ctx = _app(ctx)
    try:
        raw_lines = file.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise _fail(app_ctx, f"Cannot read {file}: {e}") from e

    numbered = [(n, line.strip()) for n, line in enumerate(raw_lines, start=1) if line.strip()]
    if not numbered:
        raise _fail(app_ctx, f"No messages found in {file}.")
    _require_api_key(app_ctx)

    with app_ctx.console.status(f"AI is analyzing {len(numbered)} message(s)..."):
        outcomes = capture_many([line for _, line in numbered])

    captured = [o.transaction for o in outcomes if o.transaction is not None]
    for outcome in outcomes:
        if outcome.error is not None:
            line_no = numbered[outcome.position][0]
            app_ctx.err_console.print(
                f"[red]Line {line_no}:[/red] {escape(str(outcome.error))}"
            )

    if captured:
        try:
            app_ctx.store.append_many(captured)
        except PersistenceError as e:
            app_ctx.err_console.print(f"[yellow]Warning:[/yellow] {escape(str(e))}")
        app_ctx.console.print(transactions_table(captured))

    failed = len(outcomes) - len(captured)
    app_ctx.console.print(f"Captured {len(captured)} of {len(outcomes)} message(s).")
    if failed:
        raise typer.Exit(1)


@app.command("list")
def list_cmd(ctx: typer.Context) -> None:
    """All transactions in chronological order."""

    app_ctx = _app(ctx)
    transactions = app_ctx.store.all()
    if not transactions:
        app_ctx.console.print("No transactions found.")
        return
    app_ctx.console.print(transactions_table(transactions))


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m finance_flow.cli`
    app()
