"""Tests for the railbuild command-line interface."""

import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from railbuild import __version__, output
from railbuild.cli import create_parser, main
from railbuild.models import BuildReport, EntryResult, EntryStatus

ENTRY_A = "mod/Assets/RSC/Pack/Scripts/Engine.ts"


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    """The CLI reconfigures the root logger; put it back after each test."""
    monkeypatch.delenv("RAILBUILD_TSTL", raising=False)
    monkeypatch.delenv("RAILBUILD_LUAC", raising=False)
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _fake_orchestrator(results: list[EntryResult]) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.entry_points.return_value = [r.entry for r in results]
    orchestrator.build_all = AsyncMock(return_value=BuildReport(results=results, total_elapsed=0.5))
    return orchestrator


def _console_text() -> str:
    return output.get_console().file.getvalue()


class TestParser:
    def test_build_arguments(self, tmp_path: Path):
        args = create_parser().parse_args(["build", str(tmp_path), "--lua", "-j", "3", "--src", "a/*", "--src", "b/*"])
        assert args.command == "build"
        assert args.project_dir == tmp_path
        assert args.lua_only is True
        assert args.jobs == 3
        assert args.sources == ["a/*", "b/*"]

    def test_watch_arguments(self, tmp_path: Path):
        args = create_parser().parse_args(["watch", str(tmp_path), "-v"])
        assert args.command == "watch"
        assert args.verbose is True
        assert args.lua_only is False

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert f"railbuild {__version__}" in capsys.readouterr().out


class TestBuildCommand:
    def test_build_is_default_command(self, project_dir: Path):
        orchestrator = _fake_orchestrator([EntryResult(ENTRY_A, EntryStatus.SUCCESS, elapsed=0.2)])
        with patch("railbuild.cli.BuildOrchestrator", return_value=orchestrator) as factory:
            with pytest.raises(SystemExit) as exc_info:
                main([str(project_dir)])

        assert exc_info.value.code == 0
        factory.assert_called_once()
        orchestrator.build_all.assert_awaited_once()
        assert "Built 1/1 entry points" in _console_text()

    def test_flags_reach_config(self, project_dir: Path):
        orchestrator = _fake_orchestrator([EntryResult(ENTRY_A, EntryStatus.SUCCESS)])
        with patch("railbuild.cli.BuildOrchestrator", return_value=orchestrator) as factory:
            with pytest.raises(SystemExit):
                main(["build", str(project_dir), "--lua", "-j", "2", "--src", "mod/Assets/RSC/*"])

        config = factory.call_args.args[0]
        assert config.project_dir == project_dir.resolve()
        assert config.lua_only is True
        assert config.jobs == 2
        assert config.entry_filters == ("mod/Assets/RSC/*",)

    def test_entry_failures_still_exit_zero(self, project_dir: Path):
        orchestrator = _fake_orchestrator(
            [
                EntryResult(ENTRY_A, EntryStatus.FAILED, error="luac exited with code 1", error_type="ToolchainError"),
            ]
        )
        with patch("railbuild.cli.BuildOrchestrator", return_value=orchestrator):
            with pytest.raises(SystemExit) as exc_info:
                main(["build", str(project_dir)])

        assert exc_info.value.code == 0
        text = _console_text()
        assert f"{ENTRY_A} FAILED ToolchainError: luac exited with code 1" in text
        assert "Built 0/1 entry points" in text

    def test_no_entry_points_exits_one(self, tmp_path: Path):
        with pytest.raises(SystemExit) as exc_info:
            main(["build", str(tmp_path)])
        assert exc_info.value.code == 1
        assert "ERROR: No entry points found" in _console_text()

    def test_invalid_config_file_exits_one(self, project_dir: Path):
        (project_dir / "railbuild.json").write_text("[", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["build", str(project_dir)])
        assert exc_info.value.code == 1

    def test_interrupt_exits_130(self, project_dir: Path):
        orchestrator = _fake_orchestrator([EntryResult(ENTRY_A, EntryStatus.SUCCESS)])
        orchestrator.build_all = AsyncMock(side_effect=KeyboardInterrupt)
        with patch("railbuild.cli.BuildOrchestrator", return_value=orchestrator):
            with pytest.raises(SystemExit) as exc_info:
                main(["build", str(project_dir)])
        assert exc_info.value.code == 130

    def test_missing_project_dir_exits_two(self, tmp_path: Path):
        with pytest.raises(SystemExit) as exc_info:
            main(["build", str(tmp_path / "nowhere")])
        assert exc_info.value.code == 2

    def test_verbose_enables_debug_logging(self, project_dir: Path):
        orchestrator = _fake_orchestrator([EntryResult(ENTRY_A, EntryStatus.SUCCESS)])
        with patch("railbuild.cli.BuildOrchestrator", return_value=orchestrator):
            with pytest.raises(SystemExit):
                main(["build", str(project_dir), "-v"])
        assert logging.getLogger().level == logging.DEBUG


class TestWatchCommand:
    def test_watch_runs_scheduler(self, project_dir: Path):
        scheduler = MagicMock()
        scheduler.watch = AsyncMock(side_effect=KeyboardInterrupt)
        with patch("railbuild.cli.WatchScheduler", return_value=scheduler) as factory:
            with pytest.raises(SystemExit) as exc_info:
                main(["watch", str(project_dir)])

        assert exc_info.value.code == 130
        factory.assert_called_once()
        scheduler.watch.assert_awaited_once()
        assert "Stopped watching" in _console_text()

    def test_watch_without_entries_exits_one(self, tmp_path: Path):
        with pytest.raises(SystemExit) as exc_info:
            main(["watch", str(tmp_path)])
        assert exc_info.value.code == 1
