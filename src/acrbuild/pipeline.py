"""End-to-end registry build: package, upload, schedule and stream the log."""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from .archive import CompletedArchive, package_context
from .cancellation import CancellationToken
from .config import BuildSettings
from .errors import RegistryError
from .ignore import read_ignore_file
from .orchestrator import BuildLogOrchestrator, BuildSession
from .registry import BuildRequest, RegistryClient
from .sinks import StatusSink
from .tailer import TerminalState
from .ui import status

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "context.tar.gz"


@dataclass(frozen=True)
class BuildOutcome:
    """Result of a pipeline run.

    ``archive`` is only set when the archive was written to a configured
    ``archive_path``. Temporary archives are deleted before ``run`` returns.
    """

    state: TerminalState
    build_id: Optional[str] = None
    archive: Optional[CompletedArchive] = None


class BuildPipeline:
    """Run one registry build for a set of :class:`BuildSettings`.

    Packaging problems (bad ignore patterns, unreadable files) raise before
    anything is sent to the registry. Registry failures are reported through
    the sink and end the run as ``FAILED``.
    """

    def __init__(
        self,
        registry: RegistryClient,
        sink: StatusSink,
        settings: BuildSettings,
        token: Optional[CancellationToken] = None,
        *,
        orchestrator: Optional[BuildLogOrchestrator] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.registry = registry
        self.sink = sink
        self.settings = settings
        self.token = token if token is not None else CancellationToken()
        self.orchestrator = orchestrator or BuildLogOrchestrator(
            registry, sink, poll_interval=settings.poll_interval
        )
        self.console = console

    def ignore_patterns(self) -> List[str]:
        """Configured patterns first, then the context's ignore file."""
        patterns = list(self.settings.ignore)
        if self.settings.ignore_file:
            patterns.extend(
                read_ignore_file(Path(self.settings.context) / self.settings.ignore_file)
            )
        return patterns

    def package(self, destination: Path) -> CompletedArchive:
        with status(self.console, "Packaging build context"):
            archive = package_context(
                self.settings.context,
                destination,
                ignore=self.ignore_patterns(),
                ignore_file=None,
            )
        self.sink.log_status(
            f"Packaged {len(archive.file_list)} entries from {self.settings.context}"
        )
        return archive

    def run(self) -> BuildOutcome:
        if self.token.is_cancelled():
            return BuildOutcome(TerminalState.CANCELLED)

        if self.settings.archive_path is not None:
            return self._run_with_archive(Path(self.settings.archive_path))

        with tempfile.TemporaryDirectory(prefix="acrbuild-") as workdir:
            outcome = self._run_with_archive(Path(workdir) / ARCHIVE_NAME)
        return replace(outcome, archive=None)

    def _run_with_archive(self, destination: Path) -> BuildOutcome:
        settings = self.settings
        archive = self.package(destination)

        if self.token.is_cancelled():
            return BuildOutcome(TerminalState.CANCELLED, archive=archive)

        try:
            with status(self.console, "Uploading build context"):
                source_location = self.registry.upload_source(
                    settings.resource_group, settings.registry_name, archive.path
                )
            if self.token.is_cancelled():
                return BuildOutcome(TerminalState.CANCELLED, archive=archive)
            request = BuildRequest(
                image_names=list(settings.image_names),
                source_location=source_location,
                dockerfile=settings.dockerfile,
                platform=settings.platform,
                build_args=dict(settings.build_args),
                push=settings.push,
                no_cache=settings.no_cache,
                timeout=settings.timeout,
            )
            build_id = self.registry.start_build(
                settings.resource_group, settings.registry_name, request
            )
        except RegistryError as exc:
            logger.debug("Registry call failed", exc_info=True)
            self.sink.log_error(f"Failed to start the build: {exc}")
            return BuildOutcome(TerminalState.FAILED, archive=archive)

        self.sink.log_status(f"Started build {build_id} on {settings.registry_name}")
        session = BuildSession(
            resource_group=settings.resource_group,
            registry_name=settings.registry_name,
            build_id=build_id,
            token=self.token,
        )
        state = self.orchestrator.run(session)
        return BuildOutcome(state, build_id=build_id, archive=archive)
