"""Rich UI helpers for terminal output."""

from __future__ import annotations

from typing import Iterable, Sequence

from rich.console import Console
from rich.table import Table

from .activity import LogEntry, LogType
from .models import Bucket, CurrentStatus, OperationResult, RepositorySnapshot, ScanOutcome, ScanResult
from .repository import RepositoryState

console = Console()

_LOG_STYLES = {
    LogType.MESSAGE: "",
    LogType.SUCCESS: "green",
    LogType.WARNING: "yellow",
    LogType.ERROR: "red",
}

_STATUS_STYLES = {
    CurrentStatus.UNTOUCHED: "[green]clean[/green]",
    CurrentStatus.DIRTY: "[yellow]dirty[/yellow]",
    CurrentStatus.CONFLICTS: "[red]conflicts[/red]",
}

_OUTCOME_STYLES = {
    ScanOutcome.SUCCESS: "[green]ok[/green]",
    ScanOutcome.FAILED: "[red]error[/red]",
    ScanOutcome.CANCELLED: "[yellow]cancelled[/yellow]",
}


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]✗[/red] {message}", style="red")


class ConsoleSink:
    """Activity-log sink printing each batch as coloured lines."""

    def __init__(self, target: Console | None = None, show_messages: bool = False) -> None:
        self.console = target or console
        self.show_messages = show_messages

    def __call__(self, batch: Sequence[LogEntry], clear: bool) -> None:
        for entry in batch:
            if entry.log_type is LogType.MESSAGE and not self.show_messages:
                continue
            self.console.print(entry.text, style=_LOG_STYLES[entry.log_type], markup=False, highlight=False)


def repositories_table(states: Iterable[RepositoryState], results: dict[str, ScanResult] | None = None) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Repository")
    table.add_column("Scan", justify="center")
    table.add_column("Status", justify="center")
    table.add_column("Behind", justify="right")
    table.add_column("Ahead", justify="right")
    table.add_column("Conflicted", justify="right")
    table.add_column("Staged", justify="right")
    table.add_column("Changed", justify="right")
    table.add_column("Untracked", justify="right")
    table.add_column("Stashed", justify="right")
    results = results or {}
    for state in states:
        snapshot = state.snapshot
        result = results.get(state.label)
        scan = _OUTCOME_STYLES[result.outcome] if result else "-"
        table.add_row(
            state.label,
            scan,
            _STATUS_STYLES[snapshot.status],
            str(snapshot.behind),
            str(snapshot.ahead),
            str(len(snapshot.conflicted)),
            str(len(snapshot.staged)),
            f"{len(snapshot.files_to_commit)}/{len(snapshot.not_staged)}",
            str(len(snapshot.untracked)),
            str(len(snapshot.stashed)),
        )
    return table


def show_repository(state: RepositoryState) -> None:
    snapshot: RepositorySnapshot = state.snapshot
    console.print(f"[bold]{state.display_label}[/bold]  {_STATUS_STYLES[snapshot.status]}")
    for bucket in (Bucket.CONFLICTED, Bucket.STAGED, Bucket.NOT_STAGED, Bucket.UNTRACKED, Bucket.STASHED):
        entries = snapshot.bucket(bucket)
        if not entries:
            continue
        table = Table(title=bucket.value.replace("_", " ").title(), show_header=True, header_style="bold cyan")
        table.add_column("File", style="cyan")
        table.add_column("Change")
        table.add_column("Type")
        table.add_column("Status", justify="center")
        for entry in entries:
            table.add_row(entry.display_label, entry.change_type.value, entry.file_type.value, _STATUS_STYLES[entry.status])
        console.print(table)
    if not snapshot.entries():
        console.print("[dim]Nothing pending.[/dim]")


def show_operation(result: OperationResult) -> None:
    if result.success:
        success(f"{result.label}: {result.operation}")
    else:
        error(f"{result.label}: {result.operation} failed {result.message}".rstrip())
