"""
alliage-sandbox — scenario config loader.

File: src/alliage_sandbox/config/loader.py

Purpose
- Load ``<scenarioRoot>/<config file>`` on top of the built-in defaults and
  resolve placeholders in every path-bearing field exactly once.

What should be included in this file
- JSON parsing by default; YAML (``yaml.safe_load``) for ``.yaml``/``.yml`` files.
- Placeholder resolution of ``command``, ``copyFiles``, ``alliageModules`` and
  ``linkModules`` values (keys untouched).

Functional requirements
- A missing file propagates ``FileNotFoundError``; there is no fallback.
- Unparseable content raises ``ConfigLoadError`` chained to the parser error.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import yaml

from alliage_sandbox.config.schema import SandboxConfig, default_config, validate_config
from alliage_sandbox.constants import CONFIG_FILE_NAME

if TYPE_CHECKING:
    from alliage_sandbox.config.placeholders import PlaceholderResolver

_YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})


class ConfigLoadError(ValueError):
    """Raised when a scenario config file cannot be parsed."""


def load_sandbox_config(
    scenario_root: str | Path,
    *,
    resolver: PlaceholderResolver,
    file_name: str = CONFIG_FILE_NAME,
    environ: Mapping[str, str] | None = None,
) -> SandboxConfig:
    """Load the scenario config and return it with placeholders resolved."""

    config_path = Path(scenario_root) / file_name
    payload = read_config_payload(config_path)
    env_map = os.environ if environ is None else environ

    merged = validate_config(payload, defaults=default_config(env_map))
    return merged.map_paths(resolver.resolve)


def read_config_payload(path: Path) -> dict[str, Any]:
    """Read a config file as a top-level mapping."""

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in _YAML_SUFFIXES:
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigLoadError(f"unable to parse sandbox config {path!s}: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise ConfigLoadError(f"sandbox config {path!s} must contain a mapping at the top level")
    return dict(payload)


__all__ = ["ConfigLoadError", "load_sandbox_config", "read_config_payload"]
