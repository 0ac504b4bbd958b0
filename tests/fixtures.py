"""Source trees shared by the packaging tests."""
from __future__ import annotations

from pathlib import Path
import textwrap


GENERATORS = ("javascript", "python", "php", "lua", "dart")


def write_blockly_tree(root: Path) -> None:
    """Lay out the compressed build outputs the default targets consume."""

    (root / "blockly_compressed.js").write_text("var Blockly = {};\n")
    (root / "blocks_compressed.js").write_text("Blockly.Blocks.text = {};\n")
    for language in GENERATORS:
        (root / f"{language}_compressed.js").write_text(f"// {language} generator\n")
    msg = root / "msg" / "js"
    msg.mkdir(parents=True)
    (msg / "en.js").write_text(
        textwrap.dedent(
            """\
            goog.provide('Blockly.Msg.en');
            goog.require('Blockly.Msg');
            Blockly.Msg["ADD_COMMENT"] = "Add Comment";
            """
        )
    )
    media = root / "media"
    media.mkdir()
    (media / "sprites.svg").write_text("<svg/>")
    (root / "package.json").write_text('{"name": "blockly"}\n')
    typings = root / "typings"
    typings.mkdir()
    (typings / "blockly.d.ts").write_text("declare module Blockly {}\n")
