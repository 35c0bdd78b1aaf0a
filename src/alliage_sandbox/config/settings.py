"""Runtime settings with deterministic precedence: CLI > env (``ALLIAGE_SANDBOX_``) > defaults."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Final, Literal

from alliage_sandbox.config.loader import ConfigLoadError
from alliage_sandbox.constants import CONFIG_FILE_NAME, DEFAULT_PROJECT_ROOT, DEFAULT_SANDBOX_ROOT

ENV_PREFIX: Final[str] = "ALLIAGE_SANDBOX_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_ENV_BINDINGS: Final[dict[str, tuple[str, Literal["str", "bool", "level"]]]] = {
    f"{ENV_PREFIX}ROOT": ("sandbox_root", "str"),
    f"{ENV_PREFIX}PROJECT_ROOT": ("project_root", "str"),
    f"{ENV_PREFIX}CONFIG": ("config_file_name", "str"),
    f"{ENV_PREFIX}LOG_LEVEL": ("log_level", "level"),
    f"{ENV_PREFIX}KEEP": ("keep", "bool"),
}


@dataclass(frozen=True, slots=True)
class SandboxSettings:
    """Where sandboxes live and how the tooling around them behaves."""

    sandbox_root: str = DEFAULT_SANDBOX_ROOT
    project_root: str = DEFAULT_PROJECT_ROOT
    config_file_name: str = CONFIG_FILE_NAME
    log_level: str = "WARNING"
    keep: bool = False


def load_settings(
    *,
    environ: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, object] | None = None,
) -> SandboxSettings:
    """Build settings from defaults, then environment variables, then CLI values.

    ``None`` CLI values mean "not given" and never override lower layers.
    """

    env_map = os.environ if environ is None else environ
    overrides: dict[str, object] = {}

    for env_name in sorted(_ENV_BINDINGS):
        raw = env_map.get(env_name)
        if raw is None or not raw.strip():
            continue
        field_name, value_type = _ENV_BINDINGS[env_name]
        overrides[field_name] = _coerce_env(raw, value_type, env_name)

    known = {item.name for item in fields(SandboxSettings)}
    for key, value in (cli_overrides or {}).items():
        if key not in known:
            raise ConfigLoadError(f"unknown settings override {key!r}")
        if value is not None:
            overrides[key] = value

    if "log_level" in overrides:
        overrides["log_level"] = _coerce_level(str(overrides["log_level"]), "log_level")

    return replace(SandboxSettings(), **overrides)


def _coerce_env(raw: str, value_type: Literal["str", "bool", "level"], env_name: str) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "level":
        return _coerce_level(value, env_name)

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(f"{env_name} must be a boolean (true/false/1/0/yes/no/on/off)")


def _coerce_level(value: str, source: str) -> str:
    normalized = value.strip().upper()
    if not isinstance(logging.getLevelName(normalized), int):
        raise ConfigLoadError(f"{source} must be a logging level name, got {value!r}")
    return normalized


__all__ = ["ENV_PREFIX", "SandboxSettings", "load_settings"]
