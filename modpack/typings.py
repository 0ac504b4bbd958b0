"""Aggregation of per-file declaration fragments into one bundle."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import Any, List, Mapping, Sequence
import contextlib
import shutil

from .composer import Fragment, compose, write_artifact
from .console import Console
from .core.command_runner import CommandError, CommandRunner
from .core.config_loader import normalize_string_list
from .core.template import TemplateResolver
from .errors import CollaboratorError, ConfigurationError, FilesystemContentionError


DEFAULT_GENERATOR = [
    "node",
    "./node_modules/typescript-closure-tools/definition-generator/src/main.js",
    "{{source}}",
    "{{destination}}",
]


class ScratchWorkspace:
    """Transient directory owned by a single aggregation run.

    Entering removes whatever a previous run left behind and creates the
    directory fresh; leaving removes it again, whether or not the run
    succeeded.
    """

    def __init__(self, path: Path, console: Console | None = None):
        self.path = path
        self.console = console

    def __enter__(self) -> Path:
        if self.path.exists():
            try:
                shutil.rmtree(self.path)
            except OSError as exc:
                raise FilesystemContentionError(self.path, str(exc)) from exc
        try:
            self.path.mkdir(parents=True)
        except OSError as exc:
            raise FilesystemContentionError(self.path, str(exc)) from exc
        return self.path

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as err:
            if exc is None:
                raise FilesystemContentionError(self.path, str(err)) from err
            if self.console is not None:
                self.console.error(f"Could not remove {self.path}: {err}")


@dataclass(slots=True)
class TypingsConfig:
    source_dirs: List[str]
    header_parts: List[str]
    output: str
    scratch_dir: str
    generator: List[str] = field(default_factory=lambda: list(DEFAULT_GENERATOR))
    extensions: List[str] = field(default_factory=lambda: [".js"])

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TypingsConfig":
        try:
            source_dirs = normalize_string_list(data.get("source_dirs"), field_name="typings.source_dirs")
            header_parts = normalize_string_list(data.get("header_parts"), field_name="typings.header_parts")
            generator = normalize_string_list(data.get("generator"), field_name="typings.generator")
            extensions = normalize_string_list(data.get("extensions"), field_name="typings.extensions")
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc
        output = data.get("output")
        scratch_dir = data.get("scratch_dir")
        if not output:
            raise ConfigurationError("typings.output is required")
        if not scratch_dir:
            raise ConfigurationError("typings.scratch_dir is required")
        return cls(
            source_dirs=source_dirs,
            header_parts=header_parts,
            output=str(output),
            scratch_dir=str(scratch_dir),
            generator=generator or list(DEFAULT_GENERATOR),
            extensions=[ext.lower() for ext in extensions] or [".js"],
        )


def list_eligible_files(directory: Path, extensions: Sequence[str]) -> List[Path]:
    """Files directly inside *directory* with an eligible extension, by name."""

    if not directory.is_dir():
        raise ConfigurationError(f"Typings source directory does not exist: {directory}")
    allowed = tuple(ext.lower() for ext in extensions)
    return sorted(
        (path for path in directory.iterdir() if path.is_file() and path.name.lower().endswith(allowed)),
        key=lambda path: path.name,
    )


def _relative_to(path: Path, base_dir: Path) -> Path:
    try:
        return path.relative_to(base_dir)
    except ValueError:
        return path


def _generator_command(template: Sequence[str], *, source: Path, destination: Path) -> List[str]:
    resolver = TemplateResolver({"source": source.as_posix(), "destination": destination.as_posix()})
    return [str(resolver.resolve(part)) for part in template]


def aggregate_typings(
    source_dirs: Sequence[str | Path],
    header_parts: Sequence[str | Path],
    *,
    output: Path,
    scratch_dir: Path,
    runner: CommandRunner,
    base_dir: Path,
    generator: Sequence[str] = DEFAULT_GENERATOR,
    extensions: Sequence[str] = (".js",),
    console: Console | None = None,
    dry_run: bool = False,
) -> Path:
    """Generate a declaration fragment per eligible source file and bundle them.

    Source directories and header parts are relative to *base_dir*. The
    generator command runs from *base_dir* with source paths relative to it,
    so each fragment lands in the scratch workspace under the same relative
    path with ``.d.ts`` appended.
    """

    console = console or Console(level="none")
    header_paths = [Path(part) for part in header_parts]
    scratch_root = scratch_dir if scratch_dir.is_absolute() else base_dir / scratch_dir
    output_path = output if output.is_absolute() else base_dir / output

    workspace = contextlib.nullcontext(scratch_root) if dry_run else ScratchWorkspace(scratch_root, console)
    with workspace:
        generated: List[Fragment] = []
        for source_dir in source_dirs:
            relative_dir = Path(source_dir)
            for source in list_eligible_files(base_dir / relative_dir, extensions):
                relative_source = relative_dir / source.name
                destination = scratch_root / f"{relative_source.as_posix()}.d.ts"
                if not dry_run:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                command = _generator_command(
                    generator,
                    source=relative_source,
                    destination=_relative_to(destination, base_dir),
                )
                console.info(f"Generating typings for {relative_source.as_posix()}")
                try:
                    runner.run(command, cwd=base_dir, note=f"typings {relative_source.as_posix()}")
                except CommandError as exc:
                    raise CollaboratorError(
                        f"Declaration generator for {relative_source.as_posix()}",
                        returncode=exc.result.returncode,
                        diagnostics=exc.result.diagnostics,
                    ) from exc
                generated.append(destination)

        if dry_run:
            console.dry(f"compose {len(header_paths)} header part(s) and {len(generated)} fragment(s) into {output_path}")
            return output_path
        bundle = compose([*header_paths, *generated], base_dir=base_dir)
        write_artifact(output_path, bundle)

    console.info(f"Wrote {output_path}")
    return output_path


def run_typings(
    config: TypingsConfig,
    *,
    base_dir: Path,
    runner: CommandRunner,
    console: Console,
    dry_run: bool = False,
) -> Path:
    return aggregate_typings(
        config.source_dirs,
        config.header_parts,
        output=Path(config.output),
        scratch_dir=Path(config.scratch_dir),
        runner=runner,
        base_dir=base_dir,
        generator=config.generator,
        extensions=config.extensions,
        console=console,
        dry_run=dry_run,
    )


__all__ = [
    "DEFAULT_GENERATOR",
    "ScratchWorkspace",
    "TypingsConfig",
    "aggregate_typings",
    "list_eligible_files",
    "run_typings",
]
