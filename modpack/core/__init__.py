"""Shared helpers: command execution, configuration files, and templates."""

from .command_runner import CommandError, CommandResult, CommandRunner, RecordingCommandRunner, SubprocessCommandRunner
from .template import CycleError, TemplateError, TemplateResolver, topological_order

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "CycleError",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "TemplateError",
    "TemplateResolver",
    "topological_order",
]
