"""Host environment capability and search-path composition for sandbox commands."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from alliage_sandbox.constants import (
    BINS_DIR,
    LINKED_MODULES_DIR,
    NODE_MODULES_DIR,
    NODE_PATH_ENV_VAR,
    PATH_ENV_VAR,
    SEARCH_PATH_SEPARATOR,
)


@dataclass(frozen=True, slots=True)
class HostEnvironment:
    """Immutable snapshot of the variables a sandbox inherits from its host."""

    variables: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    @classmethod
    def from_process(cls) -> HostEnvironment:
        return cls(dict(os.environ))

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.variables.get(name, default)

    def search_path(self, name: str) -> tuple[str, ...]:
        """Split a colon-separated variable, skipping empty entries."""

        raw = self.variables.get(name)
        if not raw:
            return ()
        return tuple(entry for entry in raw.split(SEARCH_PATH_SEPARATOR) if entry)


def module_search_path(sandbox_path: Path, host: HostEnvironment) -> list[Path]:
    """Linked modules first, then the sandbox dependency tree, then inherited ``NODE_PATH``."""

    return [
        sandbox_path / LINKED_MODULES_DIR,
        sandbox_path / NODE_MODULES_DIR,
        *(Path(entry) for entry in host.search_path(NODE_PATH_ENV_VAR)),
    ]


def executable_search_path(sandbox_path: Path, host: HostEnvironment) -> list[str]:
    """Inherited ``PATH`` entries followed by the sandbox binary directory."""

    return [*host.search_path(PATH_ENV_VAR), str(sandbox_path / BINS_DIR)]


def build_command_environment(
    sandbox_path: Path,
    host: HostEnvironment,
    overlay: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Host variables, then the caller overlay, then the composed search paths.

    ``NODE_PATH`` and ``PATH`` always come from the composition, whatever the
    host or the overlay define.
    """

    merged = dict(host.variables)
    if overlay is not None:
        merged.update(overlay)
    merged[NODE_PATH_ENV_VAR] = SEARCH_PATH_SEPARATOR.join(
        str(entry) for entry in module_search_path(sandbox_path, host)
    )
    merged[PATH_ENV_VAR] = SEARCH_PATH_SEPARATOR.join(executable_search_path(sandbox_path, host))
    return merged


__all__ = [
    "HostEnvironment",
    "build_command_environment",
    "executable_search_path",
    "module_search_path",
]
