"""Stable constants shared across the sandbox lifecycle."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Scenario and sandbox file names.
CONFIG_FILE_NAME: Final[str] = "alliage-sandbox-config.json"
MODULES_MANIFEST_FILE_NAME: Final[str] = "alliage-modules.json"
PACKAGE_MANIFEST_FILE_NAME: Final[str] = "package.json"

# Framework script invoked by every sandbox command.
FRAMEWORK_SCRIPT_NAME: Final[str] = "alliage-scripts"

# Sandbox directory layout (relative to the sandbox root).
NODE_MODULES_DIR: Final[PurePosixPath] = PurePosixPath("node_modules")
LINKED_MODULES_DIR: Final[PurePosixPath] = PurePosixPath("linked_modules")
BINS_DIR: Final[PurePosixPath] = NODE_MODULES_DIR / ".bin"

# Defaults relative to the caller's working directory.
DEFAULT_SANDBOX_ROOT: Final[str] = "./.alliage-sandboxes"
DEFAULT_PROJECT_ROOT: Final[str] = "./"

# Default interpreter when ``NODE`` is not set in the host environment.
DEFAULT_COMMAND: Final[str] = "node"
COMMAND_ENV_VAR: Final[str] = "NODE"

# Search path variables composed for child processes.
NODE_PATH_ENV_VAR: Final[str] = "NODE_PATH"
PATH_ENV_VAR: Final[str] = "PATH"
SEARCH_PATH_SEPARATOR: Final[str] = ":"

NOT_INITIALIZED_MESSAGE: Final[str] = (
    'The sandbox must be initialized by calling the "init()" method'
)

__all__ = [
    "BINS_DIR",
    "COMMAND_ENV_VAR",
    "CONFIG_FILE_NAME",
    "DEFAULT_COMMAND",
    "DEFAULT_PROJECT_ROOT",
    "DEFAULT_SANDBOX_ROOT",
    "FRAMEWORK_SCRIPT_NAME",
    "LINKED_MODULES_DIR",
    "MODULES_MANIFEST_FILE_NAME",
    "NODE_MODULES_DIR",
    "NODE_PATH_ENV_VAR",
    "NOT_INITIALIZED_MESSAGE",
    "PACKAGE_MANIFEST_FILE_NAME",
    "PATH_ENV_VAR",
    "SEARCH_PATH_SEPARATOR",
]
