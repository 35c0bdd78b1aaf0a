"""
alliage-sandbox — disposable filesystem sandboxes for Alliage integration scenarios.

File: src/alliage_sandbox/__init__.py

Purpose
- Package root. Exposes the ``Sandbox`` lifecycle object and its public types.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from alliage_sandbox.config import ConfigLoadError, ConfigValidationError, SandboxConfig
from alliage_sandbox.constants import CONFIG_FILE_NAME
from alliage_sandbox.sandbox import (
    Command,
    CommandHandle,
    CompletionReason,
    ModuleLocator,
    ModuleResolutionError,
    Sandbox,
    SandboxError,
    SandboxNotInitializedError,
)

__version__ = "0.1.0"

__all__ = [
    "CONFIG_FILE_NAME",
    "Command",
    "CommandHandle",
    "CompletionReason",
    "ConfigLoadError",
    "ConfigValidationError",
    "ModuleLocator",
    "ModuleResolutionError",
    "Sandbox",
    "SandboxConfig",
    "SandboxError",
    "SandboxNotInitializedError",
    "__version__",
]
