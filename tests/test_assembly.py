from __future__ import annotations

from pathlib import Path, PurePosixPath
import tempfile
import unittest

from modpack.assembly import CopyTarget, PackageTarget, Packager, TargetGraph, declare_targets
from modpack.composer import TextFragment
from modpack.config_loader import load_pipeline_config
from modpack.console import Console
from modpack.errors import ConfigurationError, FilesystemContentionError, MissingInputError, TargetFailures
from modpack.wrapper import ModuleDependency, ModuleSpec, References

from tests.fixtures import write_blockly_tree


def _target(name: str, output: str, *references: str) -> PackageTarget:
    dependencies = tuple(
        ModuleDependency(name=f"Dep{index}", references=References(cjs=reference))
        for index, reference in enumerate(references)
    )
    spec = ModuleSpec(
        output_name=output,
        namespace="X",
        exports="X",
        dependencies=dependencies,
        sources=(TextFragment("x();"),),
    )
    return PackageTarget(name=name, spec=spec, destination=PurePosixPath(output))


class TargetGraphTests(unittest.TestCase):
    def test_dependencies_come_before_dependents(self) -> None:
        graph = TargetGraph(
            [
                _target("index", "index.js", "./browser", "./node"),
                _target("node", "node.js", "./core"),
                _target("browser", "browser.js", "./core"),
                _target("core", "core.js"),
            ]
        )
        order = graph.order()
        self.assertEqual(order[0], "core")
        self.assertEqual(order[-1], "index")
        self.assertEqual(graph.dependencies_of("index"), ["browser", "node"])

    def test_references_resolve_relative_to_destination(self) -> None:
        graph = TargetGraph([_target("core", "core.js"), _target("locale-en", "msg/en.js", "../core")])
        self.assertEqual(graph.dependencies_of("locale-en"), ["core"])

    def test_destination_collision_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            TargetGraph([_target("a", "core.js"), _target("b", "./core.js")])
        self.assertIn("both write 'core.js'", str(ctx.exception))

    def test_nested_destination_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            TargetGraph(
                [
                    CopyTarget(name="media", source=Path("media"), destination=PurePosixPath("media")),
                    _target("sprite", "media/sprite.js"),
                ]
            )

    def test_unknown_reference_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            TargetGraph([_target("blocks", "blocks.js", "./core")])

    def test_cycle_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            TargetGraph([_target("a", "a.js", "./b"), _target("b", "b.js", "./a")])
        self.assertIn("cycle", str(ctx.exception))


class DefaultTargetsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()
        write_blockly_tree(self.root)
        self.config = load_pipeline_config(self.root)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _packager(self, **kwargs) -> Packager:
        return Packager.from_config(self.config, console=Console(level="none"), **kwargs)

    def test_declares_every_default_target(self) -> None:
        names = [target.name for target in declare_targets(self.config)]
        for expected in (
            "core",
            "core-node",
            "core-platform",
            "core-browser",
            "blocks",
            "blocks-browser",
            "browser",
            "node",
            "index",
            "umd",
            "generator-javascript",
            "generator-dart",
            "locale-en",
            "media",
            "json",
            "dts",
        ):
            self.assertIn(expected, names)

    def test_entry_module_follows_platform_entries(self) -> None:
        order = self._packager().graph.order()
        self.assertLess(order.index("browser"), order.index("index"))
        self.assertLess(order.index("node"), order.index("index"))
        self.assertLess(order.index("core-node"), order.index("core-platform"))
        self.assertLess(order.index("core-platform"), order.index("blocks"))
        self.assertLess(order.index("core-platform"), order.index("locale-en"))

    def test_package_writes_wrapped_modules(self) -> None:
        packager = self._packager()
        packager.prepare_destination()
        packager.package()
        dist = self.root / "dist"

        core = (dist / "core.js").read_text()
        self.assertIn("module.exports = factory(require('./blockly-node'));", core)
        self.assertNotIn("define(", core)
        self.assertIn("Blockly.setLocale = function(locale) {", core)

        node_core = (dist / "blockly-node.js").read_text()
        self.assertIn("var self = global;", node_core)
        self.assertIn("if (!(typeof DOMParser === 'function')) {", node_core)
        self.assertLess(node_core.index("var Blockly = {};"), node_core.index("typeof DOMParser"))

        locale = (dist / "msg" / "en.js").read_text()
        self.assertNotIn("goog.", locale)
        self.assertIn("define(['../core'], factory);", locale)
        self.assertIn("var Blockly = {};Blockly.Msg={};", locale)

        node = (dist / "node.js").read_text()
        self.assertIn("require('./javascript')", node)
        self.assertIn("require('./dart')", node)
        self.assertIn("function(Blockly, En, BlocklyBlocks, BlocklyJavaScript,", node)

        index = (dist / "index.js").read_text()
        self.assertIn("define(['./browser'], factory);", index)
        self.assertIn("module.exports = factory(require('./node'));", index)

        umd = (dist / "blockly.min.js").read_text()
        self.assertTrue(umd.startswith("/* eslint-disable */\n(function(root, factory) {"))

        self.assertEqual((dist / "media" / "sprites.svg").read_text(), "<svg/>")
        self.assertEqual((dist / "blockly.d.ts").read_text(), "declare module Blockly {}\n")
        self.assertTrue((dist / "python.js").is_file())

    def test_repeated_runs_are_byte_identical(self) -> None:
        dist = self.root / "dist"

        def run() -> dict[str, bytes]:
            packager = self._packager()
            packager.prepare_destination()
            packager.package()
            return {
                path.relative_to(dist).as_posix(): path.read_bytes()
                for path in sorted(dist.rglob("*"))
                if path.is_file()
            }

        self.assertEqual(run(), run())

    def test_clean_removes_stale_output(self) -> None:
        stale = self.root / "dist" / "old.js"
        stale.parent.mkdir()
        stale.write_text("")
        self._packager().prepare_destination()
        self.assertFalse(stale.exists())
        self.assertTrue((self.root / "dist").is_dir())

    def test_refuses_to_clean_the_source_tree(self) -> None:
        packager = Packager([], source_root=self.root, dist=self.root)
        with self.assertRaises(ConfigurationError):
            packager.prepare_destination()
        self.assertTrue((self.root / "blockly_compressed.js").exists())

    def test_clean_failure_is_contention(self) -> None:
        blocker = self.root / "blocker"
        blocker.write_text("")
        packager = Packager([], source_root=self.root, dist=blocker / "dist")
        with self.assertRaises(FilesystemContentionError):
            packager.prepare_destination()

    def test_failures_are_reported_after_every_job_finishes(self) -> None:
        (self.root / "blocks_compressed.js").unlink()
        packager = self._packager()
        packager.prepare_destination()
        with self.assertRaises(TargetFailures) as ctx:
            packager.package()

        failed = [name for name, _ in ctx.exception.failures]
        self.assertEqual(sorted(failed), ["blocks", "blocks-browser", "umd"])
        self.assertTrue(all(isinstance(error, MissingInputError) for _, error in ctx.exception.failures))
        self.assertTrue((self.root / "dist" / "core.js").is_file())
        self.assertFalse((self.root / "dist" / "blocks.js").exists())

    def test_dry_run_writes_nothing(self) -> None:
        packager = self._packager(dry_run=True)
        packager.prepare_destination()
        packager.package(["core", "media"])
        self.assertFalse((self.root / "dist").exists())

    def test_unknown_target_selection(self) -> None:
        with self.assertRaises(ConfigurationError):
            self._packager().package(["nope"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
