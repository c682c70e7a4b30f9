"""Rich UI helpers for terminal output."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:  # pragma: no cover
    from .auth import DeviceCode
    from .rollback import RollbackFailure


console = Console()
err_console = Console(stderr=True)


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {escape(message)}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {escape(message)}")


def warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]✗[/red] {escape(message)}", style="red")


def show_device_code(code: DeviceCode) -> None:
    console.print(f"[bold yellow]Please visit:[/bold yellow] {escape(code.verification_uri)}")
    console.print(f"[bold yellow]and enter code:[/bold yellow] {escape(code.user_code)}")


def show_rollback_failures(failures: list[RollbackFailure]) -> None:
    for failure in failures:
        warning(f"Cleanup incomplete, {failure}")


def show_environments(rows: list[tuple[str, str, str]]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", no_wrap=True)
    table.add_column("Lockspec", no_wrap=True)
    table.add_column("Path", overflow="fold")
    for name, stamped, path in rows:
        table.add_row(name, stamped, path)
    console.print(table)
