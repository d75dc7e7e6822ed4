"""
Logging helpers for acrbuild.

Provides a single entrypoint `configure_logging` with defaults suited to a
CI console: milestones at INFO, HTTP and archive internals at DEBUG. Remote
build output does not go through logging; it is printed by a status sink.
"""

from __future__ import annotations

import logging
from typing import Optional


def _quiet_third_party() -> None:
    """Reduce verbosity of the HTTP stack."""
    for name in (
        "httpx",
        "httpcore",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(level: int = logging.INFO, use_rich: bool = True) -> None:
    """Configure application logging.

    Args:
        level: Root logging level (default: logging.INFO).
        use_rich: If True, install a Rich handler that writes to stderr with
            a concise format.
    """
    _quiet_third_party()

    # Remove any pre-existing handlers to avoid duplicate output
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(level)

    handler: Optional[logging.Handler] = None
    if use_rich:
        from rich.console import Console
        from rich.logging import RichHandler

        handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            enable_link_path=False,
        )
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
