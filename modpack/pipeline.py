"""The named tasks of the packaging pipeline."""
from __future__ import annotations

from pathlib import Path
import threading

from .assembly import Packager
from .composer import compose, write_artifact
from .config_loader import PipelineConfig
from .console import Console
from .core.command_runner import CommandError, CommandRunner
from .errors import CollaboratorError
from .shim import export_footer, inject_shim
from .tasks import TaskGraph, series
from .typings import run_typings
from .watch import Watcher


def run_build(config: PipelineConfig, *, runner: CommandRunner, console: Console) -> None:
    """Invoke the external build step that produces the compressed sources."""

    command = config.build.command
    try:
        result = runner.run(command, cwd=config.paths.source_root, note="build")
    except CommandError as exc:
        raise CollaboratorError(
            "Build step",
            returncode=exc.result.returncode,
            diagnostics=exc.result.diagnostics,
        ) from exc
    if result.stdout:
        console.debug(result.stdout.rstrip())


def run_node_bundle(config: PipelineConfig, *, console: Console, dry_run: bool = False) -> Path:
    """Write the single-file bundle that loads under Node without a module loader."""

    bundle = config.node_bundle
    source_root = config.paths.source_root
    output = source_root / bundle.output
    body = compose(bundle.sources, base_dir=source_root)
    text = inject_shim(body, export_footer(bundle.namespace), settings=config.shim)
    if dry_run:
        console.dry(f"write {output}")
        return output
    write_artifact(output, text)
    console.info(f"Wrote {output}")
    return output


def build_task_graph(
    config: PipelineConfig,
    *,
    runner: CommandRunner,
    console: Console,
    dry_run: bool = False,
    stop_watching: threading.Event | None = None,
) -> TaskGraph:
    graph = TaskGraph(console)
    source_root = config.paths.source_root
    packager = Packager.from_config(config, console=console, dry_run=dry_run)

    def watch() -> None:
        rebuild = [config.watch.concat_task] if config.watch.concat_task else []
        watcher = Watcher(
            source_root,
            config.watch.patterns,
            lambda: graph.run_node(series("build", *rebuild)),
            debounce_ms=config.watch.debounce_ms,
            poll_ms=config.watch.poll_ms,
            console=console,
        )
        watcher.run(stop_watching)

    graph.register("build", lambda: run_build(config, runner=runner, console=console))
    graph.register("node-bundle", lambda: run_node_bundle(config, console=console, dry_run=dry_run))
    graph.register("watch", watch)
    graph.register(
        "typings",
        lambda: run_typings(config.typings, base_dir=source_root, runner=runner, console=console, dry_run=dry_run),
    )
    graph.register("clean", lambda: packager.prepare_destination())

    for name in packager.target_names():
        graph.register(f"package-{name}", lambda name=name: packager.package([name]))

    graph.register("package", lambda: packager.package())
    graph.register("release", series("build", "typings", "clean", "package"))
    graph.register("default", series("build", "node-bundle"))
    return graph


__all__ = ["build_task_graph", "run_build", "run_node_bundle"]
