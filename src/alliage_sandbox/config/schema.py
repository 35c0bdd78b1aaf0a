"""
alliage-sandbox — scenario configuration schema.

File: src/alliage_sandbox/config/schema.py

Purpose
- Define the typed scenario configuration, its built-in defaults and strict
  validation of payloads read from ``alliage-sandbox-config.json``.

Functional requirements
- Defaults: command from ``NODE`` (else ``node``), empty copy list, empty link
  mapping, empty module list.
- File payloads are merged key by key on top of the defaults; unknown keys are ignored.
- Wrong value types fail with every offending key listed.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

from alliage_sandbox.constants import COMMAND_ENV_VAR, DEFAULT_COMMAND

if TYPE_CHECKING:
    from collections.abc import Callable

KEY_COMMAND: Final[str] = "command"
KEY_COPY_FILES: Final[str] = "copyFiles"
KEY_LINK_MODULES: Final[str] = "linkModules"
KEY_ALLIAGE_MODULES: Final[str] = "alliageModules"


@dataclass(frozen=True, slots=True)
class SandboxConfig:
    """Scenario configuration after defaults and placeholder resolution."""

    command: str
    copy_files: tuple[str, ...] = ()
    link_modules: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    alliage_modules: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "copy_files", tuple(self.copy_files))
        object.__setattr__(self, "alliage_modules", tuple(self.alliage_modules))
        object.__setattr__(self, "link_modules", MappingProxyType(dict(self.link_modules)))

    def map_paths(self, transform: Callable[[str], str]) -> SandboxConfig:
        """Return a copy with ``transform`` applied to every path-bearing value."""

        return replace(
            self,
            command=transform(self.command),
            copy_files=tuple(transform(item) for item in self.copy_files),
            link_modules={name: transform(path) for name, path in self.link_modules.items()},
            alliage_modules=tuple(transform(item) for item in self.alliage_modules),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            KEY_COMMAND: self.command,
            KEY_COPY_FILES: list(self.copy_files),
            KEY_LINK_MODULES: dict(self.link_modules),
            KEY_ALLIAGE_MODULES: list(self.alliage_modules),
        }


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when a scenario configuration payload has invalid values."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid sandbox config:\n{rendered}")


def default_command(environ: Mapping[str, str]) -> str:
    return environ.get(COMMAND_ENV_VAR) or DEFAULT_COMMAND


def default_config(environ: Mapping[str, str]) -> SandboxConfig:
    """Return built-in defaults for the given host environment."""

    return SandboxConfig(command=default_command(environ))


def validate_config(payload: Mapping[str, object], *, defaults: SandboxConfig) -> SandboxConfig:
    """Merge ``payload`` on top of ``defaults`` and return the typed configuration."""

    issues: list[ConfigValidationIssue] = []
    command = defaults.command
    copy_files = defaults.copy_files
    link_modules: Mapping[str, str] = defaults.link_modules
    alliage_modules = defaults.alliage_modules

    if KEY_COMMAND in payload:
        raw_command = payload[KEY_COMMAND]
        if isinstance(raw_command, str):
            command = raw_command
        else:
            issues.append(ConfigValidationIssue(KEY_COMMAND, "must be a string"))

    if KEY_COPY_FILES in payload:
        parsed = _string_list(payload[KEY_COPY_FILES], KEY_COPY_FILES, issues)
        if parsed is not None:
            copy_files = parsed

    if KEY_LINK_MODULES in payload:
        raw_links = payload[KEY_LINK_MODULES]
        if not isinstance(raw_links, Mapping):
            issues.append(
                ConfigValidationIssue(KEY_LINK_MODULES, "must map module names to paths")
            )
        else:
            links: dict[str, str] = {}
            for name, path in raw_links.items():
                if not isinstance(name, str) or not name.strip():
                    issues.append(
                        ConfigValidationIssue(
                            f"{KEY_LINK_MODULES}.{name}", "module name must not be empty"
                        )
                    )
                elif not isinstance(path, str):
                    issues.append(
                        ConfigValidationIssue(f"{KEY_LINK_MODULES}.{name}", "must be a string")
                    )
                else:
                    links[name] = path
            link_modules = links

    if KEY_ALLIAGE_MODULES in payload:
        parsed = _string_list(payload[KEY_ALLIAGE_MODULES], KEY_ALLIAGE_MODULES, issues)
        if parsed is not None:
            alliage_modules = parsed

    if issues:
        raise ConfigValidationError(issues)

    return SandboxConfig(
        command=command,
        copy_files=copy_files,
        link_modules=link_modules,
        alliage_modules=alliage_modules,
    )


def _string_list(
    value: object, key: str, issues: list[ConfigValidationIssue]
) -> tuple[str, ...] | None:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.append(ConfigValidationIssue(key, "must be a list of strings"))
        return None
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            issues.append(ConfigValidationIssue(f"{key}[{index}]", "must be a string"))
            continue
        items.append(item)
    return tuple(items)


__all__ = [
    "KEY_ALLIAGE_MODULES",
    "KEY_COMMAND",
    "KEY_COPY_FILES",
    "KEY_LINK_MODULES",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "SandboxConfig",
    "default_command",
    "default_config",
    "validate_config",
]
