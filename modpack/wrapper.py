"""Generation of universal module wrappers (AMD, CommonJS, browser globals).

A :class:`ModuleSpec` declares what a packaged module exposes and which
modules it needs. :func:`wrap` turns the module spec and its body into a
self-contained script whose outer function probes the host environment in
a fixed order and uses the first linkage convention it finds::

    (function(root, factory) {
      if (typeof define === 'function' && define.amd) {
        define(['./core'], factory);
      } else if (typeof exports === 'object') {
        module.exports = factory(require('./core'));
      } else {
        root.Blockly.Blocks = factory(root.Blockly);
      }
    }(this, function(Blockly) {
    ...body...
    return Blockly.Blocks;
    }));

The global root object is never touched by the pipeline itself; writing to
it is only a behavior of the generated artifact.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, Sequence, Tuple
import re

from .composer import Fragment
from .errors import ConfigurationError


_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_RESERVED_WORDS = frozenset(
    {
        "break", "case", "catch", "class", "const", "continue", "debugger", "default",
        "delete", "do", "else", "export", "extends", "finally", "for", "function", "if",
        "import", "in", "instanceof", "new", "return", "super", "switch", "this", "throw",
        "try", "typeof", "var", "void", "while", "with", "yield", "let", "static",
        "enum", "await", "null", "true", "false",
    }
)


class Convention(str, Enum):
    """Linkage conventions, in the order the generated wrapper probes them."""

    AMD = "amd"
    CJS = "cjs"
    GLOBAL = "global"

    @classmethod
    def parse(cls, value: Any) -> "Convention":
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(item.value for item in cls)
            raise ConfigurationError(f"Unknown linkage convention '{value}'. Choose from: {choices}") from exc


PROBE_ORDER: Tuple[Convention, ...] = (Convention.AMD, Convention.CJS, Convention.GLOBAL)

_PROBES = {
    Convention.AMD: "typeof define === 'function' && define.amd",
    Convention.CJS: "typeof exports === 'object'",
}


def js_string(value: str) -> str:
    """Quote *value* as a single-quoted JavaScript string literal."""

    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
    return f"'{escaped}'"


def validate_identifier(name: str, *, field_name: str = "identifier") -> str:
    if not _IDENTIFIER_PATTERN.match(name or "") or name in _RESERVED_WORDS:
        raise ConfigurationError(f"{field_name} '{name}' is not a valid JavaScript identifier")
    return name


def validate_path(path: str, *, field_name: str = "path") -> str:
    """Validate a dotted accessor such as ``Blockly.Msg``."""

    if not path:
        raise ConfigurationError(f"{field_name} cannot be empty")
    for part in path.split("."):
        validate_identifier(part, field_name=field_name)
    return path


@dataclass(frozen=True, slots=True)
class References:
    """How a dependency is located under each linkage convention."""

    amd: str | None = None
    cjs: str | None = None
    global_: str | None = None

    def is_empty(self) -> bool:
        return not (self.amd or self.cjs or self.global_)

    def for_convention(self, convention: Convention, logical_name: str) -> str | None:
        if convention is Convention.AMD:
            return self.amd
        if convention is Convention.CJS:
            return self.cjs
        return self.global_ or logical_name

    def module_paths(self) -> List[str]:
        """AMD/CommonJS module paths, de-duplicated, AMD first."""
        paths: List[str] = []
        for value in (self.amd, self.cjs):
            if value and value not in paths:
                paths.append(value)
        return paths


@dataclass(frozen=True, slots=True)
class ModuleDependency:
    name: str
    references: References

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ModuleDependency":
        if not isinstance(data, Mapping):
            raise ConfigurationError("Dependencies must be tables with at least a 'name'")
        raw_name = data.get("name")
        if not raw_name or not str(raw_name).strip():
            raise ConfigurationError("Dependency entries must include a non-empty 'name'")

        def _optional(key: str) -> str | None:
            value = data.get(key)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ConfigurationError(f"Dependency '{raw_name}' reference '{key}' must be a string")
            return value.strip() or None

        return cls(
            name=str(raw_name).strip(),
            references=References(amd=_optional("amd"), cjs=_optional("cjs"), global_=_optional("global")),
        )


@dataclass(frozen=True)
class ModuleSpec:
    """Declarative description of one packaged module."""

    output_name: str
    namespace: str
    exports: str
    dependencies: Tuple[ModuleDependency, ...] = ()
    sources: Tuple[Fragment, ...] = ()
    conventions: Tuple[Convention, ...] = PROBE_ORDER
    root_name: str = "root"

    @property
    def parameters(self) -> List[str]:
        return [dependency.name for dependency in self.dependencies]


def _validate(spec: ModuleSpec) -> None:
    validate_path(spec.namespace, field_name=f"{spec.output_name}: namespace")
    validate_path(spec.exports, field_name=f"{spec.output_name}: exports")
    validate_identifier(spec.root_name, field_name=f"{spec.output_name}: root name")
    if not spec.conventions:
        raise ConfigurationError(f"{spec.output_name}: at least one linkage convention is required")

    seen: set[str] = set()
    for dependency in spec.dependencies:
        validate_identifier(dependency.name, field_name=f"{spec.output_name}: dependency name")
        if dependency.name in seen:
            raise ConfigurationError(f"{spec.output_name}: dependency '{dependency.name}' is declared twice")
        seen.add(dependency.name)
        if dependency.references.is_empty():
            raise ConfigurationError(
                f"{spec.output_name}: dependency '{dependency.name}' has no reference for any linkage convention"
            )
        if dependency.references.global_:
            validate_path(dependency.references.global_, field_name=f"{spec.output_name}: global reference")


def enabled_conventions(spec: ModuleSpec) -> List[Convention]:
    """Requested conventions for which every dependency has a reference.

    The result follows :data:`PROBE_ORDER` regardless of the order in which
    the module spec lists its conventions.
    """

    _validate(spec)
    requested = set(spec.conventions)
    enabled: List[Convention] = []
    for convention in PROBE_ORDER:
        if convention not in requested:
            continue
        if all(dep.references.for_convention(convention, dep.name) for dep in spec.dependencies):
            enabled.append(convention)
    if not enabled:
        requested_names = ", ".join(item.value for item in PROBE_ORDER if item in requested)
        raise ConfigurationError(
            f"{spec.output_name}: no linkage convention is usable; every dependency needs a reference "
            f"for one of: {requested_names}"
        )
    return enabled


def _registration(spec: ModuleSpec, convention: Convention) -> str:
    refs = [dep.references.for_convention(convention, dep.name) or "" for dep in spec.dependencies]
    if convention is Convention.AMD:
        return f"define([{', '.join(js_string(ref) for ref in refs)}], factory);"
    if convention is Convention.CJS:
        args = ", ".join(f"require({js_string(ref)})" for ref in refs)
        return f"module.exports = factory({args});"
    args = ", ".join(f"{spec.root_name}.{ref}" for ref in refs)
    return f"{spec.root_name}.{spec.namespace} = factory({args});"


def _render_probe_chain(spec: ModuleSpec, conventions: Sequence[Convention]) -> List[str]:
    lines: List[str] = []
    branches = [(_PROBES.get(convention), _registration(spec, convention)) for convention in conventions]
    if len(branches) == 1 and branches[0][0] is None:
        return [f"  {branches[0][1]}"]

    for index, (probe, statement) in enumerate(branches):
        if index == 0:
            lines.append(f"  if ({probe}) {{")
        elif probe is None:
            lines.append("  } else {")
        else:
            lines.append(f"  }} else if ({probe}) {{")
        lines.append(f"    {statement}")
    lines.append("  }")
    return lines


def wrap(spec: ModuleSpec, body: str) -> str:
    """Return *body* wrapped so it loads under every usable convention.

    Raises :class:`ConfigurationError` when the module spec cannot produce a
    wrapper, before any text is generated.
    """

    conventions = enabled_conventions(spec)
    lines: List[str] = [f"(function({spec.root_name}, factory) {{"]
    lines.extend(_render_probe_chain(spec, conventions))
    lines.append(f"}}(this, function({', '.join(spec.parameters)}) {{")
    text = "\n".join(lines) + "\n"
    text += body if body.endswith("\n") or not body else f"{body}\n"
    text += f"return {spec.exports};\n}}));\n"
    return text


def dependencies_from_config(values: Iterable[Mapping[str, Any]] | None) -> Tuple[ModuleDependency, ...]:
    return tuple(ModuleDependency.from_mapping(value) for value in (values or ()))


__all__ = [
    "Convention",
    "ModuleDependency",
    "ModuleSpec",
    "PROBE_ORDER",
    "References",
    "dependencies_from_config",
    "enabled_conventions",
    "js_string",
    "validate_identifier",
    "validate_path",
    "wrap",
]
