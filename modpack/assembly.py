"""Declaration and parallel production of every distributable package target."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Mapping, Sequence, Union
import posixpath
import shutil

from .composer import compose, write_artifact
from .config_loader import CopyDefinition, PipelineConfig, TargetDefinition
from .console import Console
from .core.template import CycleError, topological_order
from .errors import ConfigurationError, FilesystemContentionError, MissingInputError, TargetFailures
from .shim import ShimSettings, inject_shim
from .wrapper import ModuleDependency, ModuleSpec, References, enabled_conventions, wrap


# Generator and locale modules attach to the platform core module.
CORE_MODULE = "core"


@dataclass(frozen=True)
class PackageTarget:
    """A wrapped module written to ``destination`` inside the dist directory."""

    name: str
    spec: ModuleSpec
    destination: PurePosixPath
    prepend: str | None = None
    append: str | None = None
    strip: str | None = None
    banner: str | None = None
    shim: bool = False

    def render(self, *, source_root: Path, shim_settings: ShimSettings) -> str:
        body = compose(
            self.spec.sources,
            prepend=self.prepend,
            append=self.append,
            strip_pattern=self.strip,
            base_dir=source_root,
        )
        if self.shim:
            body = inject_shim(body, "", settings=shim_settings)
        text = wrap(self.spec, body)
        if self.banner:
            text = f"{self.banner}\n{text}"
        return text

    def module_references(self) -> List[str]:
        references: List[str] = []
        for dependency in self.spec.dependencies:
            for path in dependency.references.module_paths():
                if path not in references:
                    references.append(path)
        return references


@dataclass(frozen=True)
class CopyTarget:
    """A file or directory copied verbatim into the dist directory."""

    name: str
    source: Path
    destination: PurePosixPath

    def module_references(self) -> List[str]:
        return []


Target = Union[PackageTarget, CopyTarget]


def _destination(value: str, *, target: str) -> PurePosixPath:
    path = PurePosixPath(posixpath.normpath(value.replace("\\", "/")))
    if path.is_absolute() or path.parts[:1] == ("..",) or str(path) == ".":
        raise ConfigurationError(f"{target}: destination '{value}' must stay inside the dist directory")
    return path


def _target_from_definition(definition: TargetDefinition, package_generators: Mapping[str, str]) -> PackageTarget:
    dependencies = list(definition.dependencies)
    if definition.include_generators:
        for language, namespace in package_generators.items():
            dependencies.append(
                ModuleDependency(
                    name=f"Blockly{namespace}",
                    references=References(amd=f"./{language}", cjs=f"./{language}", global_=f"Blockly.{namespace}"),
                )
            )
    spec = ModuleSpec(
        output_name=definition.output,
        namespace=definition.namespace,
        exports=definition.exports,
        dependencies=tuple(dependencies),
        sources=definition.sources,
        conventions=definition.conventions,
    )
    return PackageTarget(
        name=definition.name,
        spec=spec,
        destination=_destination(definition.output, target=definition.name),
        prepend=definition.prepend,
        append=definition.append,
        strip=definition.strip,
        banner=definition.banner,
        shim=definition.shim,
    )


def _core_dependency(reference: str) -> ModuleDependency:
    return ModuleDependency(name="Blockly", references=References(amd=reference, cjs=reference))


def generator_targets(generators: Mapping[str, str]) -> List[PackageTarget]:
    """One module per code generation language, e.g. ``javascript.js``."""

    targets: List[PackageTarget] = []
    for language, namespace in generators.items():
        output = f"{language}.js"
        spec = ModuleSpec(
            output_name=output,
            namespace=f"Blockly.{namespace}",
            exports=f"Blockly.{namespace}",
            dependencies=(_core_dependency(f"./{CORE_MODULE}"),),
            sources=(Path(f"{language}_compressed.js"),),
        )
        targets.append(PackageTarget(name=f"generator-{language}", spec=spec, destination=PurePosixPath(output)))
    return targets


def locale_targets(
    locales: Sequence[str],
    *,
    locale_dir: str,
    strip: str | None,
    prepend: str | None,
) -> List[PackageTarget]:
    """One standalone message table per locale under ``msg/``."""

    targets: List[PackageTarget] = []
    for code in locales:
        output = f"msg/{code}.js"
        spec = ModuleSpec(
            output_name=output,
            namespace="Blockly.Msg",
            exports="Blockly.Msg",
            dependencies=(_core_dependency(f"../{CORE_MODULE}"),),
            sources=(Path(locale_dir) / f"{code}.js",),
        )
        targets.append(
            PackageTarget(
                name=f"locale-{code}",
                spec=spec,
                destination=PurePosixPath(output),
                prepend=prepend,
                strip=strip,
            )
        )
    return targets


def copy_targets(copies: Iterable[CopyDefinition]) -> List[CopyTarget]:
    return [
        CopyTarget(name=copy.name, source=Path(copy.source), destination=_destination(copy.destination, target=copy.name))
        for copy in copies
        if copy.enabled
    ]


def declare_targets(config: PipelineConfig) -> List[Target]:
    """Expand the pipeline configuration into the full list of targets."""

    package = config.package
    targets: List[Target] = [
        _target_from_definition(definition, package.generators)
        for definition in config.targets.values()
        if definition.enabled
    ]
    targets.extend(generator_targets(package.generators))
    targets.extend(
        locale_targets(
            package.locales,
            locale_dir=package.locale_dir,
            strip=package.locale_strip,
            prepend=package.locale_prepend,
        )
    )
    targets.extend(copy_targets(config.copies.values()))
    return targets


class TargetGraph:
    """Dependency graph between targets, derived from module references.

    A reference such as ``./core`` from ``blocks.js`` or ``../core`` from
    ``msg/en.js`` resolves to the target whose destination is ``core.js``.
    The graph only documents and checks the relationships; every target is
    produced independently.
    """

    def __init__(self, targets: Sequence[Target]):
        self.targets: Dict[str, Target] = {}
        by_destination: Dict[str, str] = {}
        for target in targets:
            if target.name in self.targets:
                raise ConfigurationError(f"Package target '{target.name}' is declared twice")
            key = str(target.destination)
            other = by_destination.get(key)
            if other is not None:
                raise ConfigurationError(
                    f"Package targets '{other}' and '{target.name}' both write '{key}'"
                )
            self.targets[target.name] = target
            by_destination[key] = target.name

        self._check_nesting(by_destination)
        self.edges: Dict[str, List[str]] = {
            target.name: self._resolve_references(target, by_destination) for target in targets
        }
        try:
            self._order = topological_order(self.edges)
        except CycleError as exc:
            raise ConfigurationError(f"Package targets depend on each other in a cycle: {' -> '.join(exc.cycle)}") from exc

    @staticmethod
    def _check_nesting(by_destination: Mapping[str, str]) -> None:
        destinations = sorted(by_destination)
        for parent in destinations:
            prefix = f"{parent}/"
            for child in destinations:
                if child.startswith(prefix):
                    raise ConfigurationError(
                        f"Package targets '{by_destination[parent]}' and '{by_destination[child]}' "
                        f"overlap ('{child}' is inside '{parent}')"
                    )

    @staticmethod
    def _resolve_references(target: Target, by_destination: Mapping[str, str]) -> List[str]:
        resolved: List[str] = []
        base = posixpath.dirname(str(target.destination))
        for reference in target.module_references():
            path = posixpath.normpath(posixpath.join(base, reference))
            if not path.endswith(".js"):
                path = f"{path}.js"
            owner = by_destination.get(path)
            if owner is None:
                raise ConfigurationError(
                    f"{target.name}: reference '{reference}' does not match any package target output"
                )
            if owner == target.name:
                raise ConfigurationError(f"{target.name}: reference '{reference}' points at itself")
            if owner not in resolved:
                resolved.append(owner)
        return resolved

    def order(self) -> List[str]:
        """Target names with every target after the targets it references."""
        return list(self._order)

    def dependencies_of(self, name: str) -> List[str]:
        if name not in self.edges:
            raise KeyError(name)
        return list(self.edges[name])


class Packager:
    """Produces package targets into the dist directory."""

    def __init__(
        self,
        targets: Sequence[Target],
        *,
        source_root: Path,
        dist: Path,
        shim_settings: ShimSettings | None = None,
        console: Console | None = None,
        max_workers: int | None = None,
        dry_run: bool = False,
    ) -> None:
        self.graph = TargetGraph(targets)
        self._declared = [target.name for target in targets]
        self._source_root = source_root
        self._dist = dist
        self._shim_settings = shim_settings or ShimSettings()
        self._console = console or Console(level="none")
        self._max_workers = max_workers
        self._dry_run = dry_run
        for target in targets:
            if isinstance(target, PackageTarget):
                # surface wrapper configuration errors before any write
                enabled_conventions(target.spec)

    @classmethod
    def from_config(cls, config: PipelineConfig, *, console: Console | None = None, dry_run: bool = False) -> "Packager":
        return cls(
            declare_targets(config),
            source_root=config.paths.source_root,
            dist=config.paths.dist,
            shim_settings=config.shim,
            console=console,
            dry_run=dry_run,
        )

    @property
    def dist(self) -> Path:
        return self._dist

    def target_names(self) -> List[str]:
        return list(self._declared)

    def prepare_destination(self) -> Path:
        """Remove the dist directory and create it empty."""

        dist = self._dist.resolve()
        source_root = self._source_root.resolve()
        if dist == source_root or dist in source_root.parents:
            raise ConfigurationError(f"Refusing to clean {dist}: it contains the source tree")
        if self._dry_run:
            self._console.dry(f"clean {dist}")
            return dist
        if dist.exists():
            try:
                shutil.rmtree(dist)
            except OSError as exc:
                raise FilesystemContentionError(dist, str(exc)) from exc
        try:
            dist.mkdir(parents=True)
        except OSError as exc:
            raise FilesystemContentionError(dist, str(exc)) from exc
        self._console.debug(f"Prepared {dist}")
        return dist

    def build_target(self, name: str) -> Path:
        try:
            target = self.graph.targets[name]
        except KeyError:
            raise ConfigurationError(f"Unknown package target '{name}'") from None
        destination = self._dist.joinpath(*target.destination.parts)

        if isinstance(target, CopyTarget):
            return self._copy(target, destination)

        text = target.render(source_root=self._source_root, shim_settings=self._shim_settings)
        if self._dry_run:
            self._console.dry(f"write {destination}")
            return destination
        write_artifact(destination, text)
        self._console.info(f"Packaged {name} -> {destination}")
        return destination

    def _copy(self, target: CopyTarget, destination: Path) -> Path:
        source = target.source if target.source.is_absolute() else self._source_root / target.source
        if not source.exists():
            raise MissingInputError(source)
        if self._dry_run:
            self._console.dry(f"copy {source} -> {destination}")
            return destination
        destination.parent.mkdir(parents=True, exist_ok=True)
        if source.is_dir():
            shutil.copytree(source, destination, dirs_exist_ok=True)
        else:
            shutil.copyfile(source, destination)
        self._console.info(f"Copied {target.name} -> {destination}")
        return destination

    def package(self, names: Sequence[str] | None = None) -> List[Path]:
        """Produce *names* (default: every target) as independent parallel jobs.

        All started jobs run to completion; if any failed, the run is
        reported as a whole through :class:`TargetFailures`.
        """

        selected = list(names) if names is not None else self.target_names()
        unknown = [name for name in selected if name not in self.graph.targets]
        if unknown:
            raise ConfigurationError(f"Unknown package target(s): {', '.join(unknown)}")
        if not selected:
            return []

        results: Dict[str, Path] = {}
        failures: Dict[str, BaseException] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = {executor.submit(self.build_target, name): name for name in selected}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                except Exception as exc:
                    self._console.error(f"Package target {name} failed: {exc}")
                    failures[name] = exc

        if failures:
            raise TargetFailures([(name, failures[name]) for name in selected if name in failures])
        return [results[name] for name in selected]


__all__ = [
    "CORE_MODULE",
    "CopyTarget",
    "PackageTarget",
    "Packager",
    "Target",
    "TargetGraph",
    "copy_targets",
    "declare_targets",
    "generator_targets",
    "locale_targets",
]
