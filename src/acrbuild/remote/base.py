"""
Base module for remote append-log sources.

An append log is a remote object that only grows while the producing build
runs and carries a completion flag once the build has finished writing.
Sources expose it as a sequence of byte-range fetches.
"""

import abc
import enum
from dataclasses import dataclass
from typing import Optional

from ..cancellation import CancellationToken


class Completion(str, enum.Enum):
    """Final status flag published by the remote log."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class LogChunk:
    """Result of one fetch: the bytes appended since the requested offset."""

    data: bytes = b""
    completion: Optional[Completion] = None


class AppendLogSource(abc.ABC):
    """
    Abstract base class for remote append logs.

    Concrete implementations include the HTTP append-blob reader used for
    registry build logs; tests use in-memory sources.
    """

    @abc.abstractmethod
    def fetch(self, offset: int, token: CancellationToken) -> LogChunk:
        """
        Read everything appended at or after ``offset``.

        Args:
            offset: Byte offset of the first byte not yet received.
            token: Cancellation token of the calling session.

        Returns:
            LogChunk: New bytes (possibly empty) and the completion flag as
            observed together with those bytes.

        Raises:
            OperationCancelled: If the token was set before or during the read.
            LogStreamError: If the log cannot be read.
        """
        pass

    def close(self) -> None:
        """Release any resources held by the source."""
