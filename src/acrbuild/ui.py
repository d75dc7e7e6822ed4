"""Shared helpers for terminal UI feedback using Rich."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from rich.console import Console


@contextmanager
def status(console: Optional[Console], message: str) -> Iterator[None]:
    """Render a transient spinner while a step runs, when a console is available."""

    if console is None:
        yield
        return

    with console.status(message, spinner="dots", spinner_style="cyan"):
        yield
