"""
Command-line interface for railbuild.

This module provides the `railbuild` CLI tool for building Train Simulator
scripts from TypeScript sources.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from . import __version__, output
from .config import BuildConfig
from .errors import BuildConfigError
from .orchestrator import BuildOrchestrator
from .watcher import WatchScheduler

COMMANDS = ("build", "watch")


@dataclass
class BuildArgs:
    """Arguments shared by the build and watch commands."""

    project_dir: Path
    lua_only: bool = False
    jobs: Optional[int] = None
    sources: list[str] = field(default_factory=list)
    verbose: bool = False


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=output.get_console(), show_time=False, show_path=False)],
        force=True,
    )
    output.set_verbose(verbose)


def _load_config(args: BuildArgs) -> BuildConfig:
    return BuildConfig.load(
        args.project_dir,
        lua_only=args.lua_only or None,
        jobs=args.jobs,
        entry_filters=tuple(args.sources) or None,
        verbose=args.verbose or None,
    )


def build_command(args: BuildArgs) -> None:
    """Build every entry point once and exit.

    Examples:
        railbuild                               # Build the current project
        railbuild build path/to/project         # Build a specific project
        railbuild build --lua                   # Emit Lua only
        railbuild build --src "mod/**/AEM7*"    # Build matching entry points
        railbuild build -j 4                    # Limit parallel entries
    """
    _configure_logging(args.verbose)
    output.init_timer()
    output.log_header("railbuild", __version__)

    try:
        config = _load_config(args)
        orchestrator = BuildOrchestrator(config)
        entries = orchestrator.entry_points()
        output.log(f"Building {len(entries)} entry points...")
        report = asyncio.run(orchestrator.build_all())
    except BuildConfigError as e:
        output.log_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        output.log_warning("Build interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    output.log_report(report)
    # Per-entry failures are reported above; a completed cycle exits cleanly
    sys.exit(0)


def watch_command(args: BuildArgs) -> None:
    """Rebuild entry points as their sources change, until interrupted.

    Examples:
        railbuild watch                 # Watch the current project
        railbuild watch --lua           # Watch, emitting Lua only
    """
    _configure_logging(args.verbose)
    output.init_timer()
    output.log_header("railbuild", __version__)

    try:
        config = _load_config(args)
        scheduler = WatchScheduler(BuildOrchestrator(config))
        asyncio.run(scheduler.watch())
    except BuildConfigError as e:
        output.log_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        output.log("Stopped watching")
        sys.exit(130)


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "--lua",
        dest="lua_only",
        action="store_true",
        help="Emit Lua text only; skip payload injection, luac and copies",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        default=None,
        type=int,
        help="Maximum entry points built at once (default: CPU count)",
    )
    parser.add_argument(
        "--src",
        dest="sources",
        action="append",
        default=[],
        metavar="GLOB",
        help="Only build entry points matching GLOB (repeatable)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="railbuild",
        description="railbuild - TypeScript to Train Simulator Lua build system",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"railbuild {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    build_parser = subparsers.add_parser(
        "build",
        help="Build every entry point once (default)",
    )
    _add_build_arguments(build_parser)

    watch_parser = subparsers.add_parser(
        "watch",
        help="Rebuild entry points when their sources change",
    )
    _add_build_arguments(watch_parser)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """railbuild - incremental TypeScript to Lua build system."""
    parser = create_parser()
    argv = list(sys.argv[1:] if argv is None else argv)

    # "build" is the default command
    if not argv or argv[0] not in (*COMMANDS, "-h", "--help", "--version"):
        argv.insert(0, "build")

    parsed_args = parser.parse_args(argv)

    if not parsed_args.project_dir.is_dir():
        output.log_error(f"Not a directory: {parsed_args.project_dir}")
        sys.exit(2)

    args = BuildArgs(
        project_dir=parsed_args.project_dir,
        lua_only=parsed_args.lua_only,
        jobs=parsed_args.jobs,
        sources=parsed_args.sources,
        verbose=parsed_args.verbose,
    )
    if parsed_args.command == "watch":
        watch_command(args)
    else:
        build_command(args)


if __name__ == "__main__":
    main()
