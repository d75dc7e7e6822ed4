"""Root application for the acrbuild CLI."""

from __future__ import annotations

import sys

import cyclopts
from rich.console import Console

from .build import build, package
from .runs import runs_app

console = Console(stderr=True)


def _get_version() -> str:
    """Get package version for --version flag."""
    try:
        from importlib.metadata import version

        return version("acrbuild")
    except Exception:
        return "unknown"


app = cyclopts.App(
    name="acrbuild",
    help="Run container image builds on Azure Container Registry from CI.",
    version=_get_version(),
)

app.command(build, name="build")
app.command(package, name="package")
app.command(runs_app)


def _handle_error(e: Exception) -> None:
    """Handle exceptions with user-friendly messages."""
    from ..errors import (
        ArchiveError,
        BuildfileEnvironmentNotFoundError,
        BuildfileError,
        BuildfileInvalidError,
        BuildfileNotFoundError,
        ConfigurationError,
        LogStreamError,
        RegistryError,
    )

    if isinstance(e, BuildfileNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Create a Buildfile in your project directory, "
            "or use --buildfile to specify a path.[/dim]"
        )
    elif isinstance(e, BuildfileEnvironmentNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Check the environment tables in your Buildfile.[/dim]"
        )
    elif isinstance(e, BuildfileInvalidError):
        console.print(f"[red]Error:[/red] {e}")
        console.print("\n[dim]Hint: Check your Buildfile for TOML syntax errors.[/dim]")
    elif isinstance(e, BuildfileError):
        console.print(f"[red]Buildfile Error:[/red] {e}")
    elif isinstance(e, ConfigurationError):
        console.print(f"[red]Configuration Error:[/red] {e}")
    elif isinstance(e, ArchiveError):
        console.print(f"[red]Packaging Error:[/red] {e}")
    elif isinstance(e, RegistryError):
        console.print(f"[red]Registry Error:[/red] {e}")
    elif isinstance(e, LogStreamError):
        console.print(f"[red]Log Error:[/red] {e}")
    else:
        console.print(f"[red]Error:[/red] {e}")

    sys.exit(1)


def main() -> None:
    """Entry point for the acrbuild CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        _handle_error(e)
