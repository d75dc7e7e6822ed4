"""Commands acting on an existing registry build."""

from __future__ import annotations

from typing import Annotated, Optional

import cyclopts

from ..cancellation import CancellationToken
from ..orchestrator import BuildLogOrchestrator, BuildSession
from ..sinks import ConsoleStatusSink
from .formatters import console, print_build_status
from .utils import cancel_on_signal, exit_for_state, get_registry, get_settings, setup_logging

runs_app = cyclopts.App(
    name="runs",
    help="Inspect and control registry builds.",
)


@runs_app.command(name="logs")
def logs(
    build_id: Annotated[
        str,
        cyclopts.Parameter(
            help="Registry build (run) ID.",
        ),
    ],
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
    verbose: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--verbose", "-v"],
            help="Show debug logging.",
        ),
    ] = False,
) -> None:
    """Stream the log of a build until it finishes.

    Interrupting the stream cancels the build.
    """
    setup_logging(verbose)
    settings = get_settings(env=env, buildfile=buildfile)
    session = BuildSession(
        resource_group=settings.resource_group,
        registry_name=settings.registry_name,
        build_id=build_id,
        token=CancellationToken(),
    )
    with cancel_on_signal(session.token), get_registry(settings) as registry:
        orchestrator = BuildLogOrchestrator(
            registry, ConsoleStatusSink(), poll_interval=settings.poll_interval
        )
        state = orchestrator.run(session)
    exit_for_state(state)


@runs_app.command(name="status")
def status(
    build_id: Annotated[
        str,
        cyclopts.Parameter(
            help="Registry build (run) ID.",
        ),
    ],
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
) -> None:
    """Show the registry status of a build."""
    settings = get_settings(env=env, buildfile=buildfile)
    with get_registry(settings) as registry:
        build_status = registry.get_build_status(
            settings.resource_group, settings.registry_name, build_id
        )
    print_build_status(build_id, build_status)


@runs_app.command(name="cancel")
def cancel(
    build_id: Annotated[
        str,
        cyclopts.Parameter(
            help="Registry build (run) ID.",
        ),
    ],
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
) -> None:
    """Ask the registry to cancel a build."""
    settings = get_settings(env=env, buildfile=buildfile)
    with get_registry(settings) as registry:
        registry.cancel_build(settings.resource_group, settings.registry_name, build_id)
    console.print(f"Cancel requested for build [cyan]{build_id}[/cyan].")
