"""Concatenation of ordered text fragments into a single artifact."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union
import re

from .errors import MissingInputError


FRAGMENT_SEPARATOR = "\n"
LINE_BREAK = re.compile(r"(?<=\n)")


@dataclass(frozen=True, slots=True)
class TextFragment:
    """Literal text used as a fragment instead of a file."""

    text: str


Fragment = Union[Path, TextFragment, str]
"""A :class:`~pathlib.Path` is read from disk; text is used verbatim."""


def _as_pattern(pattern: str | re.Pattern[str] | None) -> re.Pattern[str] | None:
    if pattern is None or isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)


def _resolve(fragment: Path, base_dir: Path | None) -> Path:
    if base_dir is not None and not fragment.is_absolute():
        return base_dir / fragment
    return fragment


def strip_lines(text: str, pattern: str | re.Pattern[str]) -> str:
    """Remove every line of *text* on which *pattern* matches."""

    compiled = _as_pattern(pattern)
    kept = [line for line in LINE_BREAK.split(text) if line and not compiled.search(line)]
    return "".join(kept)


def compose(
    fragments: Sequence[Fragment],
    *,
    prepend: str | None = None,
    append: str | None = None,
    strip_pattern: str | re.Pattern[str] | None = None,
    base_dir: Path | None = None,
) -> str:
    """Concatenate *fragments* in order and return the composed text.

    Every path fragment is checked before anything is read, so a missing
    input raises :class:`MissingInputError` without producing output.
    ``strip_pattern`` applies to each fragment; ``prepend`` and ``append``
    are inserted verbatim around the concatenated result.
    """

    resolved: List[Path | str] = []
    for fragment in fragments:
        if isinstance(fragment, Path):
            path = _resolve(fragment, base_dir)
            if not path.is_file():
                raise MissingInputError(path)
            resolved.append(path)
        elif isinstance(fragment, TextFragment):
            resolved.append(fragment.text)
        elif isinstance(fragment, str):
            resolved.append(fragment)
        else:
            raise TypeError(f"Unsupported fragment type: {type(fragment).__name__}")

    pattern = _as_pattern(strip_pattern)
    parts: List[str] = []
    for item in resolved:
        text = item.read_text(encoding="utf-8") if isinstance(item, Path) else item
        if pattern is not None:
            text = strip_lines(text, pattern)
        parts.append(text)

    body = FRAGMENT_SEPARATOR.join(parts)
    return f"{prepend or ''}{body}{append or ''}"


def write_artifact(path: Path, text: str) -> Path:
    """Persist *text* at *path*, creating parent directories."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="\n")
    return path


__all__ = [
    "FRAGMENT_SEPARATOR",
    "Fragment",
    "TextFragment",
    "compose",
    "strip_lines",
    "write_artifact",
]
