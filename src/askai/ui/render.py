from __future__ import annotations
from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from askai.storage.history import Conversation, ConversationItem

_ROLE_STYLE = {"user": "bold cyan", "assistant": "green", "system": "dim"}


def error_console() -> Console:
    return Console(stderr=True, highlight=False)


def print_error(message: str, console: Optional[Console] = None) -> None:
    (console or error_console()).print(f"[bold red]Error:[/bold red] {escape(message)}")


def print_notice(message: str, console: Optional[Console] = None) -> None:
    (console or error_console()).print(f"[yellow]{escape(message)}[/yellow]")


def print_conversations(convs: Iterable[Conversation], title: str, console: Optional[Console] = None) -> int:
    console = console or Console(highlight=False)
    rows = list(convs)
    if not rows:
        console.print("No conversations found.")
        return 0
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Started")
    table.add_column("Model")
    for conv in rows:
        table.add_row(str(conv.id), conv.timestamp, escape(conv.model))
    console.print(table)
    return len(rows)


def print_transcript(conv: Conversation, items: Iterable[ConversationItem], console: Optional[Console] = None) -> None:
    console = console or Console(highlight=False)
    console.print(f"[bold]Conversation {conv.id}[/bold] ({escape(conv.model)}, {conv.timestamp})")
    for item in items:
        style = _ROLE_STYLE.get(item.role, "white")
        console.print(f"[{style}]{item.role}>[/{style}] {escape(item.content)}")
        if item.role == "assistant" and (item.prompt_tokens or item.completion_tokens):
            console.print(f"[dim]  tokens: {item.prompt_tokens} in / {item.completion_tokens} out[/dim]")
