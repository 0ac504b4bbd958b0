"""Exception hierarchy for the packaging pipeline.

Every error is fatal to the task that raised it; there is no retry and no
partial success.
"""
from __future__ import annotations

from pathlib import Path
from typing import Sequence


class PackagingError(RuntimeError):
    """Base class for all pipeline failures."""


class MissingInputError(PackagingError):
    """A declared source artifact or fragment does not exist."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"Missing input: {self.path}")


class CollaboratorError(PackagingError):
    """An external process (build step, declaration generator) failed.

    ``diagnostics`` holds the collaborator's output unmodified.
    """

    def __init__(self, description: str, *, returncode: int, diagnostics: str = ""):
        self.description = description
        self.returncode = returncode
        self.diagnostics = diagnostics
        message = f"{description} failed with exit code {returncode}"
        if diagnostics:
            message = f"{message}\n{diagnostics}"
        super().__init__(message)


class ConfigurationError(PackagingError, ValueError):
    """A module or target declaration cannot be turned into a valid wrapper."""


class FilesystemContentionError(PackagingError):
    """A destination or scratch directory could not be cleared or created."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot prepare directory {self.path}: {reason}")


class TargetFailures(PackagingError):
    """One or more package targets failed within a single run."""

    def __init__(self, failures: Sequence[tuple[str, BaseException]]):
        self.failures = list(failures)
        lines = [f"{len(self.failures)} package target(s) failed:"]
        for name, error in self.failures:
            lines.append(f"  {name}: {error}")
        super().__init__("\n".join(lines))


__all__ = [
    "CollaboratorError",
    "ConfigurationError",
    "FilesystemContentionError",
    "MissingInputError",
    "PackagingError",
    "TargetFailures",
]
