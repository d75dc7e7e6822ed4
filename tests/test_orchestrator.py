"""Tests for streaming a build log to a status sink."""

import pytest
from fakes import FakeRegistry, RecordingSink, ScriptedLogSource

from acrbuild.orchestrator import CANCEL_MESSAGE, BuildLogOrchestrator, BuildSession
from acrbuild.remote.base import Completion
from acrbuild.tailer import TerminalState


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def session():
    return BuildSession(resource_group="rg", registry_name="myregistry", build_id="run1")


def _orchestrator(registry, sink, **kwargs):
    kwargs.setdefault("poll_interval", 0.01)
    return BuildLogOrchestrator(registry, sink, **kwargs)


def test_successful_build_forwards_every_line(registry, session):
    sink = RecordingSink()
    source = ScriptedLogSource([b"L1\n", b"L2\n"])

    state = _orchestrator(registry, sink).run(session, log_source=source)

    assert state is TerminalState.SUCCEEDED
    assert sink.statuses == ["L1", "L2"]
    assert sink.errors == []
    assert registry.async_cancel_calls == []
    assert not session.cancelled


def test_log_link_is_resolved_and_reported(registry, session):
    sink = RecordingSink()
    source = ScriptedLogSource([b"Step 1/2 : FROM alpine\n"])
    links = []

    def reader_factory(link):
        links.append(link)
        return source

    state = _orchestrator(registry, sink, reader_factory=reader_factory).run(session)

    assert state is TerminalState.SUCCEEDED
    assert links == [registry.log_link]
    assert sink.statuses == [
        f"Build log: {registry.log_link}",
        "Step 1/2 : FROM alpine",
    ]
    assert source.closed


def test_caller_supplied_source_is_not_closed(registry, session):
    source = ScriptedLogSource([b"x\n"])
    _orchestrator(registry, RecordingSink()).run(session, log_source=source)

    assert not source.closed


def test_failed_build_reports_failure(registry, session):
    sink = RecordingSink()
    source = ScriptedLogSource([b"step failed\n"], completion=Completion.FAILED)

    state = _orchestrator(registry, sink).run(session, log_source=source)

    assert state is TerminalState.FAILED
    assert sink.statuses == ["step failed", "Build run1 failed."]


def test_cancellation_cancels_remote_build_exactly_once(registry, session):
    def cancel_after_first_line(message):
        if message == "L1":
            session.token.cancel()

    sink = RecordingSink(on_status=cancel_after_first_line)
    source = ScriptedLogSource([b"L1\n", b"L2\n", b"L3\n"], completion=None)
    orchestrator = _orchestrator(registry, sink)

    state = orchestrator.run(session, log_source=source)

    assert state is TerminalState.CANCELLED
    assert registry.cancelled.wait(timeout=5)
    assert sink.statuses == ["L1", CANCEL_MESSAGE]
    assert session.cancelled
    assert session.token.is_cancelled()

    again = orchestrator.run(session, log_source=ScriptedLogSource([b"L4\n"]))

    assert again is TerminalState.CANCELLED
    assert registry.async_cancel_calls == ["run1"]
    assert registry.cancel_calls == ["run1"]
    assert sink.statuses.count(CANCEL_MESSAGE) == 1


def test_keyboard_interrupt_cancels_the_build(registry, session):
    sink = RecordingSink()
    source = ScriptedLogSource([b"L1\n", KeyboardInterrupt()], completion=None)

    state = _orchestrator(registry, sink).run(session, log_source=source)

    assert state is TerminalState.CANCELLED
    assert registry.cancelled.wait(timeout=5)
    assert sink.statuses == ["L1", CANCEL_MESSAGE]
    assert session.token.is_cancelled()


def test_failed_remote_cancel_is_not_fatal(session):
    registry = FakeRegistry(fail_on="cancel_build", error=RuntimeError("denied"))
    session.token.cancel()
    sink = RecordingSink()

    state = _orchestrator(registry, sink).run(session, log_source=ScriptedLogSource([]))

    assert state is TerminalState.CANCELLED
    assert registry.cancelled.wait(timeout=5)
    assert sink.errors == []


def test_stream_error_is_reported_to_error_channel(registry, session):
    sink = RecordingSink()
    source = ScriptedLogSource([b"L1\n", RuntimeError("connection reset")])

    state = _orchestrator(registry, sink).run(session, log_source=source)

    assert state is TerminalState.FAILED
    assert sink.statuses == ["L1"]
    assert sink.errors == ["Failed to get the build log: connection reset"]


def test_log_location_failure_is_reported(session):
    registry = FakeRegistry(fail_on="get_log_location")
    sink = RecordingSink()

    state = _orchestrator(registry, sink).run(session)

    assert state is TerminalState.FAILED
    assert sink.statuses == []
    assert sink.errors == ["Failed to get the build log: get_log_location failed"]


def test_already_cancelled_session_skips_log_link(session):
    registry = FakeRegistry(fail_on="get_log_location")
    session.token.cancel()
    sink = RecordingSink()

    state = _orchestrator(registry, sink).run(session)

    assert state is TerminalState.CANCELLED
    assert sink.statuses == [CANCEL_MESSAGE]
    assert sink.errors == []
    assert registry.cancelled.wait(timeout=5)
    assert registry.async_cancel_calls == ["run1"]


def test_mark_cancelled_is_true_only_once():
    session = BuildSession("rg", "reg", "run9")

    assert session.mark_cancelled() is True
    assert session.mark_cancelled() is False
    assert session.cancelled
