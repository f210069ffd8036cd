"""Formatting of session listings for pickers and the ``list`` command."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from agentdeck.ids import SessionId
    from agentdeck.pty.runtime import SessionRuntime
    from agentdeck.session.registry import SessionRecord

RUNNING_ICON = "●"
STOPPED_ICON = "○"


def format_age(seconds: float) -> str:
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h"


def format_entry(record: SessionRecord, running: bool, now: float) -> str:
    """One picker line, e.g. ``● Agent 1 (running, 5m ago)``."""
    icon = RUNNING_ICON if running else STOPPED_ICON
    status = "running" if running else "stopped"
    age = format_age(now - record.created_at)
    return f"{icon} {record.name} ({status}, {age} ago)"


def sessions_table(
    records: Iterable[SessionRecord],
    runtime: SessionRuntime,
    active_id: SessionId | None,
    now: float,
) -> Table:
    table = Table(title="Agent Sessions", title_justify="left")
    table.add_column("", width=1)
    table.add_column("#", justify="right")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Created")

    count = 0
    for index, record in enumerate(records, start=1):
        running = runtime.is_running(record.id)
        table.add_row(
            "*" if record.id == active_id else "",
            str(index),
            str(record.id),
            escape(record.name),
            "[green]running[/green]" if running else "[red]stopped[/red]",
            f"{format_age(now - record.created_at)} ago",
        )
        count = index
    table.caption = f"Total: {count} session(s)"
    return table
