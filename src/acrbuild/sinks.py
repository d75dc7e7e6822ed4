"""Status sinks receiving the user-visible output of a build."""

from __future__ import annotations

import abc
import logging
from typing import Optional

from rich.console import Console

logger = logging.getLogger(__name__)


class StatusSink(abc.ABC):
    """One-way, ordered text output shown on the invoking pipeline's console."""

    @abc.abstractmethod
    def log_status(self, message: str) -> None:
        pass

    @abc.abstractmethod
    def log_error(self, message: str) -> None:
        pass


class ConsoleStatusSink(StatusSink):
    """Print status lines verbatim and errors in red.

    Remote build output is printed without Rich markup or highlighting so
    that brackets and escape sequences in the log reach the console as-is.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
    ) -> None:
        self.console = console or Console(highlight=False)
        self.error_console = error_console or Console(stderr=True, highlight=False)

    def log_status(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False, soft_wrap=True)

    def log_error(self, message: str) -> None:
        self.error_console.print(
            message, style="red", markup=False, highlight=False, soft_wrap=True
        )


class LoggingStatusSink(StatusSink):
    """Route status output through :mod:`logging`."""

    def __init__(self, name: str = "acrbuild.build") -> None:
        self._logger = logging.getLogger(name)

    def log_status(self, message: str) -> None:
        self._logger.info("%s", message)

    def log_error(self, message: str) -> None:
        self._logger.error("%s", message)
