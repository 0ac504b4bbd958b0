"""Runtime-environment shim for artifacts that must also load under Node."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .errors import ConfigurationError
from .wrapper import js_string, validate_path


class DomParserCapability(str, Enum):
    """Implementation selected for the DOM parsing interface at load time."""

    HOST = "host"
    EMULATED = "emulated"


@dataclass(frozen=True, slots=True)
class ShimSettings:
    parse_function: str = "Blockly.utils.xml.textToDomDocument"
    content_type: str = "text/xml"
    dom_module: str = "jsdom"
    dom_export: str = "JSDOM"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ShimSettings":
        data = data or {}
        defaults = cls()
        settings = cls(
            parse_function=str(data.get("parse_function", defaults.parse_function)),
            content_type=str(data.get("content_type", defaults.content_type)),
            dom_module=str(data.get("dom_module", defaults.dom_module)),
            dom_export=str(data.get("dom_export", defaults.dom_export)),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        validate_path(self.parse_function, field_name="shim.parse_function")
        validate_path(self.dom_export, field_name="shim.dom_export")
        if not self.dom_module.strip():
            raise ConfigurationError("shim.dom_module cannot be empty")


def capability_probe() -> str:
    """JavaScript expression that is true when the host parser is usable."""
    return "typeof DOMParser === 'function'"


def render_emulated_parser(settings: ShimSettings) -> str:
    """Rebinding of the parse entry point onto the DOM emulation module."""

    ctor = settings.dom_export
    return (
        f"  var {ctor} = require({js_string(settings.dom_module)}).{ctor};\n"
        f"  var window = (new {ctor}()).window;\n"
        f"  var document = window.document;\n"
        f"  var Element = window.Element;\n"
        f"  {settings.parse_function} = function(text) {{\n"
        f"    var dom = new {ctor}(text, {{ contentType: {js_string(settings.content_type)} }});\n"
        f"    return dom.window.document;\n"
        f"  }};\n"
    )


def render_capability(capability: DomParserCapability, settings: ShimSettings) -> str:
    if capability is DomParserCapability.HOST:
        return ""
    return render_emulated_parser(settings)


def render_capability_selection(settings: ShimSettings) -> str:
    """Select the host parser when present, the emulated one otherwise.

    The decision is taken once, when the artifact is loaded.
    """

    # the host implementation needs no code: the existing binding is kept
    emulated = render_capability(DomParserCapability.EMULATED, settings)
    return f"if (!({capability_probe()})) {{\n{emulated}}}\n"


def export_footer(namespace: str) -> str:
    """Expose *namespace* via ``module.exports`` first, then ``window``."""

    validate_path(namespace, field_name="namespace")
    return (
        f"if (typeof module === 'object') {{ module.exports = {namespace}; }}\n"
        f"if (typeof window === 'object') {{ window.{namespace} = {namespace}; }}\n"
    )


def inject_shim(
    body: str,
    footer: str,
    *,
    settings: ShimSettings | None = None,
) -> str:
    """Follow *body* with the DOM parser capability selection and *footer*.

    *footer* may be empty when an outer module wrapper handles exports.
    """

    settings = settings or ShimSettings()
    parts = [body if body.endswith("\n") else f"{body}\n"]
    parts.append(render_capability_selection(settings))
    parts.append(footer)
    return "".join(parts)


__all__ = [
    "DomParserCapability",
    "ShimSettings",
    "capability_probe",
    "export_footer",
    "inject_shim",
    "render_capability",
    "render_capability_selection",
    "render_emulated_parser",
]
