from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from modpack.composer import TextFragment, compose, strip_lines, write_artifact
from modpack.errors import MissingInputError


class ComposeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        (self.root / "a.js").write_text("var a = 1;")
        (self.root / "b.js").write_text("var b = 2;")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_fragments_are_joined_in_declared_order(self) -> None:
        text = compose([Path("b.js"), Path("a.js")], base_dir=self.root)
        self.assertEqual(text, "var b = 2;\nvar a = 1;")

    def test_text_fragments_are_used_verbatim(self) -> None:
        text = compose([Path("a.js"), TextFragment("// inline"), "// plain"], base_dir=self.root)
        self.assertEqual(text, "var a = 1;\n// inline\n// plain")

    def test_prepend_and_append_wrap_the_result(self) -> None:
        text = compose([Path("a.js")], prepend="/* head */\n", append="\n/* tail */", base_dir=self.root)
        self.assertEqual(text, "/* head */\nvar a = 1;\n/* tail */")

    def test_missing_input_raises_before_anything_is_read(self) -> None:
        with self.assertRaises(MissingInputError) as ctx:
            compose([Path("a.js"), Path("missing.js")], base_dir=self.root)
        self.assertEqual(ctx.exception.path, self.root / "missing.js")

    def test_strip_pattern_applies_to_each_fragment(self) -> None:
        (self.root / "msg.js").write_text(
            textwrap.dedent(
                """\
                goog.provide('Blockly.Msg.en');
                goog.require('Blockly.Msg');
                Blockly.Msg["ADD_COMMENT"] = "Add Comment";
                """
            )
        )
        text = compose([Path("msg.js")], strip_pattern=r"goog\.[^\n]+", base_dir=self.root)
        self.assertEqual(text, 'Blockly.Msg["ADD_COMMENT"] = "Add Comment";\n')
        self.assertNotRegex(text, r"goog\.")

    def test_unsupported_fragment_type_is_rejected(self) -> None:
        with self.assertRaises(TypeError):
            compose([42])  # type: ignore[list-item]


class StripLinesTests(unittest.TestCase):
    def test_removes_whole_matching_lines(self) -> None:
        text = "keep();\ngoog.require('x'); trailing();\nkeep_too();\n"
        self.assertEqual(strip_lines(text, r"goog\.[^\n]+"), "keep();\nkeep_too();\n")

    def test_only_newline_ends_a_line(self) -> None:
        text = "Blockly.Msg.A = 'x\u2028goog.y';\nBlockly.Msg.B = 'p\x85goog.q\x0c';\ngoog.provide('z');\n"
        self.assertEqual(
            strip_lines(text, r"^goog\."),
            "Blockly.Msg.A = 'x\u2028goog.y';\nBlockly.Msg.B = 'p\x85goog.q\x0c';\n",
        )

    def test_matching_line_is_removed_whole_across_unicode_separators(self) -> None:
        text = "Blockly.Msg.A = 'x\u2029goog.y';\nkeep();"
        self.assertEqual(strip_lines(text, r"goog\.[^\n]+"), "keep();")

    def test_without_matches_text_is_unchanged(self) -> None:
        text = "a();\nb();"
        self.assertEqual(strip_lines(text, "zzz"), text)


class WriteArtifactTests(unittest.TestCase):
    def test_creates_parent_directories(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            target = Path(temp) / "dist" / "msg" / "en.js"
            write_artifact(target, "x\n")
            self.assertEqual(target.read_text(), "x\n")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
