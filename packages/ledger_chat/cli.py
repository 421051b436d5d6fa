# ruff: noqa: I001
"""CLI for the ``ledger_chat`` package.

A Typer console interface over :class:`ledger_chat.orchestrator.Conversation`.
Environment variables (``LEDGER_CHAT_*``) are loaded from a local ``.env`` with
``python-dotenv`` before any command runs. Conversation logic lives in the
orchestrator and the handler chain; this module only renders.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .bulk import process_bulk
from .formatting import format_currency
from .llm import LLMApiError
from .logging_setup import configure_logging
from .models import ChatMessage, Transaction
from .orchestrator import Conversation, error_message
from .status import ConversationStatus, StatusEvent

console = Console()
err_console = Console(stderr=True)

SLASH_COMMANDS = ("/list", "/summary", "/reset", "/quit")


# ---- Rendering helpers -------------------------------------------------------


def transactions_table(transactions: list[Transaction]) -> Table:
    table = Table(title=f"Transactions ({len(transactions)})")
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Dir")
    table.add_column("Amount", justify="right")
    table.add_column("Category")
    for t in transactions:
        table.add_row(
            t.date,
            t.description,
            t.direction,
            format_currency(t.amount, t.currency),
            t.category,
        )
    return table


def _render_message(msg: ChatMessage) -> None:
    if msg.role == "assistant":
        console.print(Panel(Markdown(msg.content), title="assistant", border_style="cyan"))


def _status_printer(event: StatusEvent) -> None:
    if event.kind == "status" and event.percent is not None and event.percent < 100:
        console.print(f"[dim]{event.text} ({event.percent}%)[/dim]")


def _run_turn(conv: Conversation, text: str) -> None:
    before = len(conv.status.messages)
    reply = conv.send_message(text)
    new_messages = conv.status.history()[before:]
    for msg in new_messages:
        _render_message(msg)
    if reply and not any(m.role == "assistant" for m in new_messages):
        # Busy rejections are returned without being recorded.
        console.print(Panel(reply, title="assistant", border_style="yellow"))


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Turn free-form descriptions of money in and out into transactions, "
        "conversationally. Loads LEDGER_CHAT_* settings from a local .env."
    ),
)


@app.command("chat")
def chat_cmd() -> None:
    """Interactive conversation. Slash commands: /list, /summary, /reset, /quit."""

    conv = Conversation(status=ConversationStatus(listener=_status_printer))
    session: PromptSession[str] = PromptSession(
        completer=WordCompleter(list(SLASH_COMMANDS), sentence=True)
    )
    console.print("[bold]ledger-chat[/bold]: describe your transactions, or /quit to exit.")
    while True:
        try:
            text = session.prompt("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not text:
            continue
        if text == "/quit":
            break
        if text == "/list":
            console.print(transactions_table(conv.transactions))
            continue
        if text == "/summary":
            console.print(Panel(Markdown(conv.generate_summary()), title="summary"))
            continue
        if text == "/reset":
            conv.reset()
            console.print("[dim]Conversation reset.[/dim]")
            continue
        _run_turn(conv, text)


@app.command("extract")
def extract_cmd(
    text: Annotated[str, typer.Argument(help="Message describing one or more transactions")],
) -> None:
    """Run one conversation turn over TEXT and print what was recorded."""

    conv = Conversation()
    _run_turn(conv, text)
    if conv.status.status == "Error":
        raise typer.Exit(1)
    if conv.transactions:
        console.print(transactions_table(conv.transactions))


@app.command("bulk")
def bulk_cmd(
    file: Annotated[Path, typer.Argument(help="Text file with pasted statement data")],
) -> None:
    """Run the chunking pipeline over FILE and print the tally."""

    if not file.exists():
        err_console.print(f"[red]Error:[/red] File not found: {file}")
        raise typer.Exit(1)
    try:
        text = file.read_text(encoding="utf-8")
    except OSError as e:
        err_console.print(f"[red]Error reading file:[/red] {e}")
        raise typer.Exit(1) from e

    conv = Conversation(status=ConversationStatus(listener=_status_printer))
    try:
        report = process_bulk(
            text,
            llm=conv.llm,
            sink=conv.sink,
            status=conv.status,
            reference_date=date.today(),
            concurrency=conv.settings.bulk_concurrency,
            base_currency=conv.settings.base_currency,
        )
    except LLMApiError as e:
        err_console.print(f"[red]Error:[/red] {error_message(e)}")
        raise typer.Exit(1) from e
    for msg in conv.status.history():
        _render_message(msg)
    if report.inserted:
        console.print(transactions_table(report.inserted))


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover - exercised via the console script
    app()
