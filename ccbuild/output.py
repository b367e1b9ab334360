"""
Rich console output for the ccbuild CLI.

Respects the NO_COLOR environment variable.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console

console = Console()
err_console = Console(stderr=True)


def success(message: str, **kwargs: Any) -> None:
    """Print a success message with a green checkmark."""
    console.print(f"[green]✓[/green] {message}", **kwargs)


def error(message: str, **kwargs: Any) -> None:
    """Print an error message with a red X to stderr."""
    err_console.print(f"[red]✗[/red] {message}", **kwargs)
