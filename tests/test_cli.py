"""Tests for the acrbuild CLI."""

import sys
import tarfile
import textwrap
from contextlib import nullcontext
from pathlib import Path

import pytest
from fakes import FakeRegistry

import acrbuild.cli.build as build_cli
import acrbuild.cli.runs as runs_cli
from acrbuild.cli.app import app, main
from acrbuild.cli.utils import EXIT_CANCELLED, EXIT_FAILED, exit_for_state
from acrbuild.pipeline import BuildOutcome
from acrbuild.tailer import TerminalState


def _write_sample_buildfile(tmp_path: Path) -> Path:
    """Create a sample Buildfile for testing."""
    content = textwrap.dedent(
        """
        [default]
        subscription_id = "sub-1"
        resource_group = "rg"
        registry_name = "myregistry"
        image_names = ["app:1"]
        access_token = "token"
        """
    )
    buildfile = tmp_path / "Buildfile.toml"
    buildfile.write_text(content, encoding="utf-8")
    return buildfile


def _invoke(args):
    try:
        app(args)
    except SystemExit as exc:
        return exc.code or 0
    return 0


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(build_cli, "setup_logging", lambda verbose: None)
    monkeypatch.setattr(runs_cli, "setup_logging", lambda verbose: None)


class TestCLIHelp:
    """Test CLI help messages and basic command structure."""

    def test_main_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            app(["--help"])
        assert exc_info.value.code == 0

        captured = capsys.readouterr()
        assert "build" in captured.out
        assert "package" in captured.out
        assert "runs" in captured.out

    def test_version(self):
        with pytest.raises(SystemExit) as exc_info:
            app(["--version"])
        assert exc_info.value.code == 0

    def test_runs_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            app(["runs", "--help"])
        assert exc_info.value.code == 0

        captured = capsys.readouterr()
        assert "logs" in captured.out
        assert "status" in captured.out
        assert "cancel" in captured.out


class TestPackageCommand:
    def test_packages_directory(self, tmp_path, capsys):
        context = tmp_path / "ctx"
        context.mkdir()
        (context / "Dockerfile").write_text("FROM alpine\n", encoding="utf-8")
        (context / "debug.log").write_text("noise\n", encoding="utf-8")
        output = tmp_path / "context.tar.gz"

        code = _invoke(
            ["package", str(context), "--output", str(output), "--ignore", "*.log"]
        )

        assert code == 0
        with tarfile.open(output, "r:gz") as tar:
            assert tar.getnames() == ["Dockerfile"]
        assert "Packaged 1 entries" in capsys.readouterr().out

    def test_list_shows_entries(self, tmp_path, capsys):
        context = tmp_path / "ctx"
        context.mkdir()
        (context / "Dockerfile").write_text("FROM alpine\n", encoding="utf-8")

        code = _invoke(
            ["package", str(context), "-o", str(tmp_path / "out.tar.gz"), "--list"]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "Packaged entries" in out
        assert "Packaged 1 entries" in out


class TestBuildCommand:
    def test_cancelled_build_exits_130(self, tmp_path, monkeypatch):
        buildfile = _write_sample_buildfile(tmp_path)
        seen = {}

        class StubPipeline:
            def __init__(self, registry, sink, settings, token, console=None):
                seen["settings"] = settings

            def run(self):
                return BuildOutcome(TerminalState.CANCELLED, build_id="run1")

        monkeypatch.setattr(build_cli, "BuildPipeline", StubPipeline)
        monkeypatch.setattr(
            build_cli, "get_registry", lambda settings: nullcontext(FakeRegistry())
        )

        code = _invoke(["build", "--buildfile", str(buildfile), "--no-cache"])

        assert code == EXIT_CANCELLED
        assert seen["settings"].no_cache is True
        assert seen["settings"].registry_name == "myregistry"

    def test_missing_buildfile_exits_1(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(
            sys, "argv", ["acrbuild", "build", "--buildfile", str(tmp_path / "missing")]
        )

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        assert "Error" in capsys.readouterr().err


class TestRunsCommands:
    def test_status(self, tmp_path, monkeypatch, capsys):
        buildfile = _write_sample_buildfile(tmp_path)
        monkeypatch.setattr(
            runs_cli, "get_registry", lambda settings: nullcontext(FakeRegistry())
        )

        code = _invoke(["runs", "status", "cb1", "--buildfile", str(buildfile)])

        assert code == 0
        out = capsys.readouterr().out
        assert "cb1" in out
        assert "Running" in out

    def test_cancel(self, tmp_path, monkeypatch):
        buildfile = _write_sample_buildfile(tmp_path)
        registry = FakeRegistry()
        monkeypatch.setattr(
            runs_cli, "get_registry", lambda settings: nullcontext(registry)
        )

        code = _invoke(["runs", "cancel", "cb1", "--buildfile", str(buildfile)])

        assert code == 0
        assert registry.cancel_calls == ["cb1"]


@pytest.mark.parametrize(
    "state, expected",
    [
        (TerminalState.FAILED, EXIT_FAILED),
        (TerminalState.CANCELLED, EXIT_CANCELLED),
    ],
)
def test_exit_for_state(state, expected):
    with pytest.raises(SystemExit) as exc_info:
        exit_for_state(state)
    assert exc_info.value.code == expected


def test_exit_for_success_returns():
    assert exit_for_state(TerminalState.SUCCEEDED) is None
