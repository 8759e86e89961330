"""Output formatting utilities for CLI."""

import json
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

console = Console()
error_console = Console(stderr=True)


def format_timestamp(ts: str | datetime | None) -> str:
    """Format a timestamp for display."""
    if ts is None:
        return "-"
    if isinstance(ts, str):
        try:
            ts = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return ts
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def format_status(status: str | None) -> Text:
    """Format changelog status with color."""
    if status is None:
        return Text("new", style="yellow")
    colors = {
        "executed": "green",
        "failed": "red",
        "skipped": "dim",
        "to_be_executed": "yellow",
    }
    return Text(status, style=colors.get(status.lower(), "white"))


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, default=str, indent=2))


def print_error(message: str, details: dict | None = None) -> None:
    """Print an error message."""
    error_console.print(f"[red]Error:[/red] {message}")
    if details:
        for key, value in details.items():
            error_console.print(f"  [dim]{key}:[/dim] {value}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]â[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_status_summary(data: dict) -> None:
    """Print migration status with applied and pending tables."""
    console.print()
    console.print(f"[bold]Migration Status[/bold] ({data['target']})")
    console.print(f"  Current Version: [cyan]{data['current_version'] or '-'}[/cyan]")
    console.print(f"  Latest Version:  [cyan]{data['latest_version'] or '-'}[/cyan]")
    console.print(f"  Applied:         [green]{data['applied_count']}[/green]")
    console.print(f"  Skipped:         [dim]{data['skipped_count']}[/dim]")
    console.print(f"  Pending:         [yellow]{data['pending_count']}[/yellow]")
    if data.get("outdated_count"):
        console.print(f"  Will Skip:       [dim]{data['outdated_count']}[/dim]")
    if data.get("locked_by"):
        console.print(f"  Locked By:       [red]{data['locked_by']}[/red]")
    console.print()

    if data["applied"]:
        table = Table(title="Applied Changelogs", show_header=True)
        table.add_column("Order", style="dim")
        table.add_column("Version", style="cyan")
        table.add_column("Description", style="white")
        table.add_column("Applied At", style="green")
        table.add_column("Time (ms)", style="dim")
        table.add_column("Runner", style="dim")

        for c in data["applied"]:
            table.add_row(
                str(c["order"]),
                c["version"],
                c["description"],
                format_timestamp(c["applied_at"]),
                str(c["duration_ms"]),
                c["runner"] or "-",
            )

        console.print(table)
        console.print()

    if data["pending"]:
        table = Table(title="Pending Changelogs", show_header=True)
        table.add_column("Version", style="yellow")
        table.add_column("Description", style="white")
        table.add_column("Type", style="dim")
        table.add_column("Status")

        for c in data["pending"]:
            table.add_row(c["version"], c["description"], c["type"], format_status(c["status"]))

        console.print(table)
    else:
        console.print("[green]All changelogs are up to date![/green]")

    if data.get("outdated"):
        console.print()
        print_warning("Changelogs below the current version will be skipped:")
        for c in data["outdated"]:
            console.print(f"  • [dim]{c['version']}[/dim] - {c['description']}")
