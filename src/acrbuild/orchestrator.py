"""Streaming of a running build's log to the job console."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from .cancellation import CancellationToken
from .errors import OperationCancelled
from .registry import RegistryClient
from .remote.appendlog import AppendBlobReader
from .remote.base import AppendLogSource
from .sinks import StatusSink
from .tailer import DEFAULT_POLL_INTERVAL, EndOfStream, LogTailer, TerminalState

logger = logging.getLogger(__name__)

CANCEL_MESSAGE = "Build cancelled, requesting the registry to stop it."


@dataclass
class BuildSession:
    """Identity of a running build plus its cancellation state.

    ``token`` is the cancellation signal shared with whoever may stop the
    job. ``cancelled`` records that the cancellation was acted upon (the
    remote cancel was issued), so it happens at most once per session.
    """

    resource_group: str
    registry_name: str
    build_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    cancelled: bool = False
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def mark_cancelled(self) -> bool:
        """Mark the session cancelled; return True only for the first call."""
        with self._lock:
            if self.cancelled:
                return False
            self.cancelled = True
            return True


class BuildLogOrchestrator:
    """Tail a build's remote log and mirror every line to a status sink.

    Args:
        registry: Client used to resolve the log link and cancel the build.
        sink: Receives each log line verbatim plus status and error messages.
        reader_factory: Builds an :class:`AppendLogSource` from the log link.
        poll_interval: Seconds to wait when the log has no new content.
    """

    def __init__(
        self,
        registry: RegistryClient,
        sink: StatusSink,
        *,
        reader_factory: Callable[[str], AppendLogSource] = AppendBlobReader,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.registry = registry
        self.sink = sink
        self.reader_factory = reader_factory
        self.poll_interval = poll_interval

    def run(
        self, session: BuildSession, log_source: Optional[AppendLogSource] = None
    ) -> TerminalState:
        """Stream the log of ``session`` until it ends or is cancelled."""
        owns_source = log_source is None
        end: Optional[EndOfStream] = None
        try:
            if session.token.is_cancelled():
                return self._handle_abort(session)
            if log_source is None:
                link = self.registry.get_log_location(
                    session.resource_group, session.registry_name, session.build_id
                )
                self.sink.log_status(f"Build log: {link}")
                log_source = self.reader_factory(link)

            tailer = LogTailer(
                log_source, session.token, poll_interval=self.poll_interval
            )
            while True:
                if session.token.is_cancelled():
                    return self._handle_abort(session)
                item = tailer.next_line()
                if isinstance(item, EndOfStream):
                    end = item
                    break
                self.sink.log_status(item)
        except KeyboardInterrupt:
            session.token.cancel()
            return self._handle_abort(session)
        except OperationCancelled:
            return self._handle_abort(session)
        except Exception as exc:
            logger.debug("Streaming log of build %s failed", session.build_id, exc_info=True)
            self.sink.log_error(f"Failed to get the build log: {exc}")
            return TerminalState.FAILED
        finally:
            if owns_source and log_source is not None:
                log_source.close()

        if end.state is TerminalState.CANCELLED:
            return self._handle_abort(session)
        if end.state is TerminalState.FAILED:
            self.sink.log_status(f"Build {session.build_id} failed.")
            return TerminalState.FAILED

        logger.info("Build %s succeeded", session.build_id)
        return TerminalState.SUCCEEDED

    def _handle_abort(self, session: BuildSession) -> TerminalState:
        if session.mark_cancelled():
            self.sink.log_status(CANCEL_MESSAGE)
            try:
                self.registry.cancel_build_async(
                    session.resource_group, session.registry_name, session.build_id
                )
            except Exception as exc:
                logger.warning(
                    "Could not request cancellation of build %s: %s",
                    session.build_id,
                    exc,
                )
        # Leave the signal set so callers see the cancellation.
        session.token.cancel()
        return TerminalState.CANCELLED
