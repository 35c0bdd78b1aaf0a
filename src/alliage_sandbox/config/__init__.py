"""
alliage-sandbox config package public API.

File: src/alliage_sandbox/config/__init__.py

Purpose
- Export scenario config loading, placeholder resolution and runtime settings.

Functional requirements
- Fail fast with clear load/validation errors; no runtime side effects on import.
"""

from alliage_sandbox.config.loader import ConfigLoadError, load_sandbox_config, read_config_payload
from alliage_sandbox.config.placeholders import Placeholder, PlaceholderResolver
from alliage_sandbox.config.schema import (
    ConfigValidationError,
    ConfigValidationIssue,
    SandboxConfig,
    default_command,
    default_config,
    validate_config,
)
from alliage_sandbox.config.settings import ENV_PREFIX, SandboxSettings, load_settings

__all__ = [
    "ENV_PREFIX",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "Placeholder",
    "PlaceholderResolver",
    "SandboxConfig",
    "SandboxSettings",
    "default_command",
    "default_config",
    "load_sandbox_config",
    "load_settings",
    "read_config_payload",
    "validate_config",
]
