"""Rich output formatters for the acrbuild CLI."""

from __future__ import annotations

from typing import Dict

from rich.console import Console
from rich.table import Table

from ..archive import CompletedArchive
from ..tailer import TerminalState

console = Console()

STATE_COLORS: Dict[str, str] = {
    "SUCCEEDED": "green",
    "FAILED": "red",
    "CANCELLED": "magenta",
    "RUNNING": "cyan",
    "QUEUED": "yellow",
    "STARTED": "cyan",
    "ERROR": "red",
    "TIMEOUT": "red",
}


def _get_state_color(state: str) -> str:
    return STATE_COLORS.get(state.upper(), "white")


def print_archive_summary(archive: CompletedArchive, show_files: bool = False) -> None:
    """Print where the archive was written and, optionally, what it contains."""
    if show_files and archive.file_list:
        table = Table(title="Packaged entries")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Path", style="cyan")
        for index, path in enumerate(archive.file_list, start=1):
            table.add_row(str(index), path)
        console.print(table)

    console.print(
        f"[green]Packaged {len(archive.file_list)} entries[/green] into {archive.path}"
    )


def print_build_status(build_id: str, status: str) -> None:
    color = _get_state_color(status)
    console.print(f"Build [cyan]{build_id}[/cyan]: [{color}]{status}[/{color}]")


def print_outcome(build_id: str, state: TerminalState) -> None:
    color = _get_state_color(state.name)
    console.print(f"Build [cyan]{build_id}[/cyan] [{color}]{state.value}[/{color}]")
