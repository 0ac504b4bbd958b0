"""Packaging pipeline that turns Blockly's compressed builds into loader-agnostic modules."""

from .errors import (
    CollaboratorError,
    ConfigurationError,
    FilesystemContentionError,
    MissingInputError,
    PackagingError,
    TargetFailures,
)

__version__ = "0.1.0"

__all__ = [
    "CollaboratorError",
    "ConfigurationError",
    "FilesystemContentionError",
    "MissingInputError",
    "PackagingError",
    "TargetFailures",
    "__version__",
]
