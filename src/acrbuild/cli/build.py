"""Commands that package a build context and run registry builds."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, List, Optional

import cyclopts
from rich.console import Console

from ..archive import package_context
from ..cancellation import CancellationToken
from ..pipeline import BuildPipeline
from ..sinks import ConsoleStatusSink
from .formatters import print_archive_summary, print_outcome
from .utils import cancel_on_signal, exit_for_state, get_registry, get_settings, setup_logging

console = Console(stderr=True)


def build(
    env: Annotated[
        Optional[str],
        cyclopts.Parameter(
            name=["--env", "-e"],
            help="Environment name from Buildfile.",
        ),
    ] = None,
    buildfile: Annotated[
        Optional[str],
        cyclopts.Parameter(
            name=["--buildfile", "-f"],
            help="Path to Buildfile.",
        ),
    ] = None,
    context: Annotated[
        Optional[str],
        cyclopts.Parameter(
            name=["--context", "-c"],
            help="Build context directory (overrides the Buildfile).",
        ),
    ] = None,
    no_cache: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--no-cache"],
            negative="",
            help="Build without the registry's layer cache.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--verbose", "-v"],
            help="Show debug logging.",
        ),
    ] = False,
) -> None:
    """Package the build context, run a registry build and stream its log.

    Exits with status 1 if the build fails and 130 if it is cancelled.
    """
    setup_logging(verbose)
    overrides = {"context": context, "no_cache": True if no_cache else None}
    settings = get_settings(env=env, buildfile=buildfile, overrides=overrides)

    token = CancellationToken()
    with cancel_on_signal(token), get_registry(settings) as registry:
        pipeline = BuildPipeline(
            registry, ConsoleStatusSink(), settings, token, console=console
        )
        outcome = pipeline.run()

    if outcome.build_id:
        print_outcome(outcome.build_id, outcome.state)
    exit_for_state(outcome.state)


def package(
    context: Annotated[
        str,
        cyclopts.Parameter(
            help="Directory to package.",
        ),
    ] = ".",
    output: Annotated[
        str,
        cyclopts.Parameter(
            name=["--output", "-o"],
            help="Destination .tar.gz file.",
        ),
    ] = "context.tar.gz",
    ignore: Annotated[
        Optional[List[str]],
        cyclopts.Parameter(
            name=["--ignore", "-i"],
            help="Ignore pattern; repeat for more. Evaluated before the ignore file.",
        ),
    ] = None,
    ignore_file: Annotated[
        Optional[str],
        cyclopts.Parameter(
            name=["--ignore-file"],
            help="Ignore file inside the context.",
        ),
    ] = ".dockerignore",
    show_files: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--list", "-l"],
            help="List the packaged entries.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--verbose", "-v"],
            help="Show debug logging.",
        ),
    ] = False,
) -> None:
    """Package a directory into a gzip-compressed tar build context."""
    setup_logging(verbose)
    archive = package_context(
        Path(context),
        Path(output),
        ignore=ignore,
        ignore_file=ignore_file or None,
    )
    print_archive_summary(archive, show_files=show_files)
