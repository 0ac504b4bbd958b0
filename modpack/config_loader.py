"""Configuration loading for the packaging pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from .composer import Fragment, TextFragment
from .core.config_loader import find_config_file, load_config_file, merge_mappings, normalize_string_list
from .core.template import TemplateError, TemplateResolver
from .errors import ConfigurationError
from .shim import ShimSettings
from .typings import TypingsConfig
from .wrapper import PROBE_ORDER, Convention, ModuleDependency, dependencies_from_config


DEFAULTS_FILE = Path(__file__).with_name("defaults.toml")
CONFIG_STEM = "modpack"

# Values handed to external tools with their own placeholders.
_UNRESOLVED_KEYS = (("typings", "generator"),)


def _string_list(data: Mapping[str, Any], key: str, *, section: str) -> List[str]:
    try:
        return normalize_string_list(data.get(key), field_name=f"{section}.{key}")
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc


def _optional_text(data: Mapping[str, Any], key: str, *, section: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"{section}.{key} must be a string")
    return value


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"[{key}] must be a table")
    return value


def _positive_int(data: Mapping[str, Any], key: str, default: int, *, section: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(f"{section}.{key} must be a non-negative integer")
    return value


def parse_sources(values: Any, *, section: str) -> Tuple[Fragment, ...]:
    """Sources are file paths, or ``{ text = "..." }`` tables for literal text."""

    if values is None:
        return ()
    if isinstance(values, (str, Mapping)):
        values = [values]
    fragments: List[Fragment] = []
    for value in values:
        if isinstance(value, str):
            fragments.append(Path(value))
        elif isinstance(value, Mapping) and isinstance(value.get("text"), str):
            fragments.append(TextFragment(value["text"]))
        else:
            raise ConfigurationError(f"{section}.sources entries must be paths or {{ text = \"...\" }} tables")
    return tuple(fragments)


@dataclass(slots=True)
class PathsConfig:
    source_root: Path
    dist: Path

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], workspace: Path) -> "PathsConfig":
        source_root = Path(str(data.get("source_root", ".")))
        if not source_root.is_absolute():
            source_root = (workspace / source_root).resolve()
        dist = Path(str(data.get("dist", "dist")))
        if not dist.is_absolute():
            dist = source_root / dist
        return cls(source_root=source_root, dist=dist)


@dataclass(slots=True)
class BuildConfig:
    command: List[str]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BuildConfig":
        command = _string_list(data, "command", section="build")
        if not command:
            raise ConfigurationError("build.command cannot be empty")
        return cls(command=command)


@dataclass(slots=True)
class WatchConfig:
    patterns: List[str]
    debounce_ms: int = 2000
    poll_ms: int = 250
    concat_task: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WatchConfig":
        return cls(
            patterns=_string_list(data, "patterns", section="watch"),
            debounce_ms=_positive_int(data, "debounce_ms", 2000, section="watch"),
            poll_ms=_positive_int(data, "poll_ms", 250, section="watch"),
            concat_task=_optional_text(data, "concat_task", section="watch") or None,
        )


@dataclass(slots=True)
class NodeBundleConfig:
    output: str
    namespace: str
    sources: Tuple[Fragment, ...]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "NodeBundleConfig":
        output = _optional_text(data, "output", section="node_bundle")
        if not output:
            raise ConfigurationError("node_bundle.output is required")
        return cls(
            output=output,
            namespace=_optional_text(data, "namespace", section="node_bundle") or "Blockly",
            sources=parse_sources(data.get("sources"), section="node_bundle"),
        )


@dataclass(slots=True)
class PackageSettings:
    default_locale: str
    locales: List[str]
    locale_dir: str
    locale_strip: str | None
    locale_prepend: str | None
    default_generator: str
    generators: Dict[str, str]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PackageSettings":
        generators_section = data.get("generators", {})
        if not isinstance(generators_section, Mapping):
            raise ConfigurationError("[package.generators] must map language names to namespaces")
        generators = {str(key): str(value) for key, value in generators_section.items()}
        default_locale = _optional_text(data, "default_locale", section="package") or "en"
        locales = _string_list(data, "locales", section="package") or [default_locale]
        if default_locale not in locales:
            locales.insert(0, default_locale)
        default_generator = _optional_text(data, "default_generator", section="package") or "javascript"
        if generators and default_generator not in generators:
            raise ConfigurationError(
                f"package.default_generator '{default_generator}' is not listed in [package.generators]"
            )
        return cls(
            default_locale=default_locale,
            locales=locales,
            locale_dir=_optional_text(data, "locale_dir", section="package") or "msg/js",
            locale_strip=_optional_text(data, "locale_strip", section="package"),
            locale_prepend=_optional_text(data, "locale_prepend", section="package"),
            default_generator=default_generator,
            generators=generators,
        )


@dataclass(slots=True)
class TargetDefinition:
    """One ``[targets.<name>]`` table."""

    name: str
    output: str
    namespace: str
    exports: str
    sources: Tuple[Fragment, ...] = ()
    dependencies: Tuple[ModuleDependency, ...] = ()
    conventions: Tuple[Convention, ...] = PROBE_ORDER
    prepend: str | None = None
    append: str | None = None
    strip: str | None = None
    banner: str | None = None
    shim: bool = False
    include_generators: bool = False
    enabled: bool = True

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "TargetDefinition":
        section = f"targets.{name}"
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"[{section}] must be a table")
        output = _optional_text(data, "output", section=section)
        namespace = _optional_text(data, "namespace", section=section)
        if not output:
            raise ConfigurationError(f"{section}.output is required")
        if not namespace:
            raise ConfigurationError(f"{section}.namespace is required")
        raw_conventions = data.get("conventions")
        conventions = (
            tuple(Convention.parse(value) for value in _string_list(data, "conventions", section=section))
            if raw_conventions is not None
            else PROBE_ORDER
        )
        raw_dependencies = data.get("dependencies") or []
        if not isinstance(raw_dependencies, list):
            raise ConfigurationError(f"{section}.dependencies must be a list of tables")
        return cls(
            name=name,
            output=output,
            namespace=namespace,
            exports=_optional_text(data, "exports", section=section) or namespace,
            sources=parse_sources(data.get("sources"), section=section),
            dependencies=dependencies_from_config(raw_dependencies),
            conventions=conventions,
            prepend=_optional_text(data, "prepend", section=section),
            append=_optional_text(data, "append", section=section),
            strip=_optional_text(data, "strip", section=section),
            banner=_optional_text(data, "banner", section=section),
            shim=bool(data.get("shim", False)),
            include_generators=bool(data.get("include_generators", False)),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass(slots=True)
class CopyDefinition:
    name: str
    source: str
    destination: str
    enabled: bool = True

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "CopyDefinition":
        section = f"copies.{name}"
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"[{section}] must be a table")
        source = _optional_text(data, "source", section=section)
        if not source:
            raise ConfigurationError(f"{section}.source is required")
        return cls(
            name=name,
            source=source,
            destination=_optional_text(data, "destination", section=section) or source,
            enabled=bool(data.get("enabled", True)),
        )


@dataclass(slots=True)
class PipelineConfig:
    paths: PathsConfig
    build: BuildConfig
    watch: WatchConfig
    typings: TypingsConfig
    shim: ShimSettings
    node_bundle: NodeBundleConfig
    package: PackageSettings
    targets: Dict[str, TargetDefinition] = field(default_factory=dict)
    copies: Dict[str, CopyDefinition] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, workspace: Path) -> "PipelineConfig":
        resolved = resolve_placeholders(data)
        targets_section = _section(resolved, "targets")
        copies_section = _section(resolved, "copies")
        return cls(
            paths=PathsConfig.from_mapping(_section(resolved, "paths"), workspace),
            build=BuildConfig.from_mapping(_section(resolved, "build")),
            watch=WatchConfig.from_mapping(_section(resolved, "watch")),
            typings=TypingsConfig.from_mapping(_section(resolved, "typings")),
            shim=ShimSettings.from_mapping(_section(resolved, "shim")),
            node_bundle=NodeBundleConfig.from_mapping(_section(resolved, "node_bundle")),
            package=PackageSettings.from_mapping(_section(resolved, "package")),
            targets={str(name): TargetDefinition.from_mapping(str(name), value) for name, value in targets_section.items()},
            copies={str(name): CopyDefinition.from_mapping(str(name), value) for name, value in copies_section.items()},
            raw=resolved,
        )


def resolve_placeholders(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Resolve ``{{section.key}}`` references against the configuration itself."""

    held: Dict[Tuple[str, str], Any] = {}
    working: Dict[str, Any] = {key: value for key, value in data.items()}
    for section, key in _UNRESOLVED_KEYS:
        table = working.get(section)
        if isinstance(table, Mapping) and key in table:
            table = dict(table)
            held[(section, key)] = table.pop(key)
            working[section] = table

    try:
        resolved = TemplateResolver(working).resolve(working)
    except TemplateError as exc:
        raise ConfigurationError(f"Invalid configuration placeholder: {exc}") from exc

    for (section, key), value in held.items():
        resolved[section][key] = value
    return resolved


def load_pipeline_config(workspace: Path, *, config_file: Path | None = None) -> PipelineConfig:
    """Load the packaged defaults and merge the workspace configuration over them.

    Without an explicit *config_file*, ``modpack.toml`` / ``.yaml`` /
    ``.yml`` / ``.json`` in *workspace* is used when present.
    """

    data: Mapping[str, Any] = load_config_file(DEFAULTS_FILE)
    overlay_path = config_file
    if overlay_path is None:
        try:
            overlay_path = find_config_file(workspace, CONFIG_STEM)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
    elif not overlay_path.is_absolute():
        overlay_path = workspace / overlay_path

    if overlay_path is not None:
        if not overlay_path.is_file():
            raise ConfigurationError(f"Configuration file not found: {overlay_path}")
        try:
            overlay = load_config_file(overlay_path)
        except (TypeError, ValueError, yaml.YAMLError) as exc:
            raise ConfigurationError(str(exc)) from exc
        data = merge_mappings(data, overlay)

    return PipelineConfig.from_mapping(data, workspace=workspace)


__all__ = [
    "BuildConfig",
    "CopyDefinition",
    "DEFAULTS_FILE",
    "NodeBundleConfig",
    "PackageSettings",
    "PathsConfig",
    "PipelineConfig",
    "TargetDefinition",
    "WatchConfig",
    "load_pipeline_config",
    "parse_sources",
    "resolve_placeholders",
]
