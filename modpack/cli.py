"""Command line interface for the packaging pipeline."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from .config_loader import load_pipeline_config
from .console import Console
from .core.command_runner import RecordingCommandRunner, SubprocessCommandRunner
from .errors import PackagingError
from .pipeline import build_task_graph


DEFAULT_TASK = "default"


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="modpack", description="Package Blockly into loader-agnostic modules")
    parser.add_argument(
        "-C",
        "--workspace",
        metavar="DIR",
        help="Directory holding the sources and modpack configuration (default: current directory)",
    )
    parser.add_argument("-c", "--config", metavar="FILE", help="Configuration file merged over the defaults")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Print actions without executing them")
    parser.add_argument(
        "--log-level",
        choices=list(Console.LEVELS),
        default="info",
        help="Console verbosity (default: info)",
    )
    parser.add_argument("--verbose", action="store_true", help="Shortcut for --log-level debug")
    parser.add_argument("--list", action="store_true", help="List the available tasks and exit")
    parser.add_argument("tasks", nargs="*", metavar="TASK", help=f"Tasks to run in order (default: {DEFAULT_TASK})")
    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path(args.workspace).resolve() if args.workspace else Path.cwd()
    console = Console(level="debug" if args.verbose else args.log_level, dry_run=args.dry_run)
    runner = _make_runner(args.dry_run)

    try:
        config = load_pipeline_config(workspace, config_file=Path(args.config) if args.config else None)
        graph = build_task_graph(config, runner=runner, console=console, dry_run=args.dry_run)
    except PackagingError as exc:
        console.error(str(exc))
        return 1

    if args.list:
        for name in graph.names():
            print(name)
        return 0

    tasks = args.tasks or [DEFAULT_TASK]
    try:
        graph.run_many(tasks)
    except PackagingError as exc:
        console.error(str(exc))
        return 1
    except KeyboardInterrupt:
        console.info("Interrupted")
        return 130
    finally:
        if args.dry_run and isinstance(runner, RecordingCommandRunner):
            _emit_dry_run_output(runner, workspace=workspace)
    return 0


__all__ = ["main"]
