"""Line-by-line tailing of a remote append log."""

from __future__ import annotations

import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, Optional, Union

from .cancellation import CancellationToken
from .errors import OperationCancelled
from .remote.base import AppendLogSource, Completion, LogChunk

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


class TerminalState(str, enum.Enum):
    """Final outcome of a log-tailing session."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TailerState(str, enum.Enum):
    FETCHING = "fetching"
    DELIVERING = "delivering"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class EndOfStream:
    """Marker returned once the log is exhausted or tailing was cancelled."""

    state: TerminalState
    message: str = ""


class LogTailer:
    """Pull complete lines out of an :class:`AppendLogSource`.

    Bytes are requested from the source starting at a cursor that only moves
    forward. Complete lines are delivered one at a time; an unterminated tail
    is held back until the rest of the line arrives, or until the remote log
    reports completion, in which case it is delivered as the last line.

    Iterating a tailer yields the lines; once it is exhausted, :attr:`result`
    holds the :class:`EndOfStream` marker. A tailer cannot be restarted.
    """

    def __init__(
        self,
        source: AppendLogSource,
        token: Optional[CancellationToken] = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        encoding: str = "utf-8",
    ) -> None:
        self._source = source
        self._token = token if token is not None else CancellationToken()
        self._poll_interval = poll_interval
        self._encoding = encoding

        self._cursor = 0
        self._pending = b""
        self._lines: Deque[str] = deque()
        self._completion: Optional[Completion] = None
        self._drained = False
        self._state = TailerState.FETCHING
        self._result: Optional[EndOfStream] = None

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def state(self) -> TailerState:
        return self._state

    @property
    def result(self) -> Optional[EndOfStream]:
        return self._result

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        item = self.next_line()
        if isinstance(item, EndOfStream):
            raise StopIteration
        return item

    def next_line(self) -> Union[str, EndOfStream]:
        """Block until a line is available or the stream has ended."""
        if self._result is not None:
            return self._result

        while True:
            if self._token.is_cancelled():
                return self._finish_cancelled()

            if self._lines:
                self._state = TailerState.DELIVERING
                return self._lines.popleft()

            if self._drained:
                if self._pending:
                    line = self._decode(self._pending)
                    self._pending = b""
                    self._state = TailerState.DELIVERING
                    return line
                return self._finish()

            self._state = TailerState.FETCHING
            try:
                chunk = self._source.fetch(self._cursor, self._token)
            except OperationCancelled:
                return self._finish_cancelled()

            self._absorb(chunk)

            if not chunk.data and chunk.completion is None:
                if self._token.wait(self._poll_interval):
                    return self._finish_cancelled()

    def _absorb(self, chunk: LogChunk) -> None:
        if chunk.data:
            self._cursor += len(chunk.data)
            *complete, self._pending = (self._pending + chunk.data).split(b"\n")
            self._lines.extend(self._decode(raw) for raw in complete)

        if chunk.completion is not None:
            if self._completion is None:
                logger.debug(
                    "Remote log reported completion %s at offset %d",
                    chunk.completion.value,
                    self._cursor,
                )
            self._completion = chunk.completion
            if not chunk.data:
                self._drained = True

    def _decode(self, raw: bytes) -> str:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode(self._encoding, errors="replace")

    def _finish(self) -> EndOfStream:
        if self._completion is Completion.SUCCEEDED:
            self._state = TailerState.SUCCEEDED
            self._result = EndOfStream(TerminalState.SUCCEEDED)
        else:
            self._state = TailerState.FAILED
            self._result = EndOfStream(
                TerminalState.FAILED, "The remote build reported a failure."
            )
        logger.debug("Log tailing finished: %s", self._result.state.value)
        return self._result

    def _finish_cancelled(self) -> EndOfStream:
        self._lines.clear()
        self._pending = b""
        self._state = TailerState.CANCELLED
        self._result = EndOfStream(TerminalState.CANCELLED, "Log tailing was cancelled.")
        logger.debug("Log tailing cancelled at offset %d", self._cursor)
        return self._result
