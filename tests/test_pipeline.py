from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
from unittest.mock import patch
import threading
import time
import unittest

from modpack import pipeline
from modpack.config_loader import load_pipeline_config
from modpack.console import Console
from modpack.core.command_runner import CommandResult, RecordingCommandRunner
from modpack.errors import CollaboratorError
from modpack.pipeline import build_task_graph, run_build, run_node_bundle
from modpack.tasks import TaskError

from tests.fixtures import write_blockly_tree


class PipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name).resolve()
        write_blockly_tree(self.workspace)
        self.console = Console(level="none")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_node_bundle_concatenates_then_shims(self) -> None:
        config = load_pipeline_config(self.workspace)
        output = run_node_bundle(config, console=self.console)

        self.assertEqual(output, self.workspace / "blockly_node_javascript_en.js")
        text = output.read_text()
        positions = [
            text.index("var Blockly = {};"),
            text.index("Blockly.Blocks.text = {};"),
            text.index("// javascript generator"),
            text.index('Blockly.Msg["ADD_COMMENT"]'),
            text.index("if (!(typeof DOMParser === 'function')) {"),
            text.index("if (typeof module === 'object') { module.exports = Blockly; }"),
            text.index("if (typeof window === 'object') { window.Blockly = Blockly; }"),
        ]
        self.assertEqual(positions, sorted(positions))

    def test_build_failure_becomes_collaborator_error(self) -> None:
        config = load_pipeline_config(self.workspace)
        runner = RecordingCommandRunner(lambda record: CommandResult(record.command, 1, "closure says no", ""))
        with self.assertRaises(CollaboratorError) as ctx:
            run_build(config, runner=runner, console=self.console)
        self.assertEqual(ctx.exception.diagnostics, "closure says no")

    def test_release_runs_in_order_and_stops_on_typings_failure(self) -> None:
        (self.workspace / "modpack.toml").write_text(
            textwrap.dedent(
                """
                [typings]
                source_dirs = ["core/"]
                header_parts = []
                """
            )
        )
        (self.workspace / "core").mkdir()
        (self.workspace / "core" / "block.js").write_text("")
        config = load_pipeline_config(self.workspace)

        def respond(record):
            if record.note and record.note.startswith("typings"):
                return CommandResult(record.command, 1, "", "bad jsdoc")
            return None

        runner = RecordingCommandRunner(respond)
        graph = build_task_graph(config, runner=runner, console=self.console)
        with self.assertRaises(TaskError) as ctx:
            graph.run("release")

        self.assertEqual(ctx.exception.task, "typings")
        self.assertIsInstance(ctx.exception.cause, CollaboratorError)
        self.assertEqual([record.note for record in runner.commands], ["build", "typings core/block.js"])
        self.assertFalse((self.workspace / "dist").exists())

    def test_watch_task_returns_when_stopped(self) -> None:
        config = load_pipeline_config(self.workspace)
        stop = threading.Event()
        stop.set()
        graph = build_task_graph(config, runner=RecordingCommandRunner(), console=self.console, stop_watching=stop)
        graph.run("watch")

    def test_watch_rebuild_bundles_the_fresh_build_output(self) -> None:
        config = load_pipeline_config(self.workspace)
        compressed = self.workspace / "blockly_compressed.js"

        def slow_build(record):
            time.sleep(0.3)
            compressed.write_text("var Blockly = 'FRESH';\n")
            return None

        runner = RecordingCommandRunner(slow_build)
        graph = build_task_graph(config, runner=runner, console=self.console)
        with patch.object(pipeline, "Watcher") as watcher_cls:
            graph.run("watch")
        rebuild = watcher_cls.call_args.args[2]

        rebuild()

        bundle = (self.workspace / "blockly_node_javascript_en.js").read_text()
        self.assertTrue(bundle.startswith("var Blockly = 'FRESH';\n"))
        self.assertEqual([record.note for record in runner.commands], ["build"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
