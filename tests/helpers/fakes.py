"""In-memory collaborators for orchestrator, tailer and pipeline tests."""

import threading
from typing import Callable, List, Optional, Sequence, Union

from acrbuild.cancellation import CancellationToken
from acrbuild.registry import BuildRequest, RegistryClient
from acrbuild.remote.base import AppendLogSource, Completion, LogChunk
from acrbuild.sinks import StatusSink


class RecordingSink(StatusSink):
    """Collects status and error messages in order."""

    def __init__(self, on_status: Optional[Callable[[str], None]] = None):
        self.statuses: List[str] = []
        self.errors: List[str] = []
        self._on_status = on_status

    def log_status(self, message: str) -> None:
        self.statuses.append(message)
        if self._on_status is not None:
            self._on_status(message)

    def log_error(self, message: str) -> None:
        self.errors.append(message)


class ScriptedLogSource(AppendLogSource):
    """Serves a scripted sequence of appends, then a completion flag.

    Each script step is either bytes (appended to the blob) or an exception
    instance (raised by that fetch). After the script is exhausted every
    fetch reports ``completion`` with no new data.
    """

    def __init__(
        self,
        steps: Sequence[Union[bytes, BaseException]],
        completion: Optional[Completion] = Completion.SUCCEEDED,
    ):
        self._steps = list(steps)
        self._blob = b""
        self.completion = completion
        self.offsets: List[int] = []
        self.closed = False

    def fetch(self, offset: int, token: CancellationToken) -> LogChunk:
        token.raise_if_cancelled()
        self.offsets.append(offset)
        if self._steps:
            step = self._steps.pop(0)
            if isinstance(step, BaseException):
                raise step
            self._blob += step
            completion = self.completion if not self._steps else None
            return LogChunk(self._blob[offset:], completion)
        return LogChunk(self._blob[offset:], self.completion)

    def close(self) -> None:
        self.closed = True


class FakeRegistry(RegistryClient):
    """Registry client recording every call."""

    def __init__(
        self,
        log_link: str = "https://storage.example.com/logs/run1.log?sig=abc",
        build_id: str = "run1",
        fail_on: Optional[str] = None,
        error: Optional[Exception] = None,
    ):
        self.log_link = log_link
        self.build_id = build_id
        self.fail_on = fail_on
        self.error = error
        self.uploads: List[str] = []
        self.requests: List[BuildRequest] = []
        self.cancel_calls: List[str] = []
        self.async_cancel_calls: List[str] = []
        self.cancelled = threading.Event()

    def _maybe_fail(self, name: str) -> None:
        if self.fail_on == name:
            raise self.error or RuntimeError(f"{name} failed")

    def upload_source(self, resource_group, registry_name, archive_path):
        self._maybe_fail("upload_source")
        self.uploads.append(str(archive_path))
        return "source/upload.tar.gz"

    def start_build(self, resource_group, registry_name, request):
        self._maybe_fail("start_build")
        self.requests.append(request)
        return self.build_id

    def get_log_location(self, resource_group, registry_name, build_id):
        self._maybe_fail("get_log_location")
        return self.log_link

    def get_build_status(self, resource_group, registry_name, build_id):
        return "Running"

    def cancel_build(self, resource_group, registry_name, build_id):
        self.cancel_calls.append(build_id)
        self.cancelled.set()
        self._maybe_fail("cancel_build")

    def cancel_build_async(self, resource_group, registry_name, build_id):
        self.async_cancel_calls.append(build_id)
        return super().cancel_build_async(resource_group, registry_name, build_id)
