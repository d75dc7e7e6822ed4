"""Shared utilities for the acrbuild CLI."""

from __future__ import annotations

import logging
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from ..cancellation import CancellationToken
from ..config import BuildSettings, load_settings
from ..logging import configure_logging
from ..registry import AzureContainerRegistry
from ..tailer import TerminalState

EXIT_FAILED = 1
EXIT_CANCELLED = 130


def setup_logging(verbose: bool) -> None:
    configure_logging(logging.DEBUG if verbose else logging.INFO)


def get_settings(
    env: Optional[str] = None,
    buildfile: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BuildSettings:
    """Load settings from the Buildfile, applying CLI overrides.

    Args:
        env: Environment name to load from the Buildfile.
        buildfile: Path to the Buildfile.
        overrides: Setting values given on the command line.

    Returns:
        Validated build settings.
    """
    return load_settings(buildfile, env=env, overrides=overrides)


def get_registry(settings: BuildSettings) -> AzureContainerRegistry:
    return AzureContainerRegistry(settings.subscription_id, settings.access_token)


@contextmanager
def cancel_on_signal(token: CancellationToken) -> Iterator[CancellationToken]:
    """Cancel ``token`` when the process receives SIGTERM.

    CI runners stop jobs with SIGTERM; Ctrl-C arrives as KeyboardInterrupt
    and is handled by the orchestrator itself. Handlers can only be
    installed from the main thread; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handler(signum, frame) -> None:
        token.cancel()

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGTERM, previous)


def exit_for_state(state: TerminalState) -> None:
    """Exit with a status code matching the terminal state of a build."""
    if state is TerminalState.SUCCEEDED:
        return
    if state is TerminalState.CANCELLED:
        sys.exit(EXIT_CANCELLED)
    sys.exit(EXIT_FAILED)
