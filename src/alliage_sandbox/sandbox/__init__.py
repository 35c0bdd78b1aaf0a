"""
alliage-sandbox — sandbox package

File: src/alliage_sandbox/sandbox/__init__.py

Purpose
- Disposable scenario sandboxes: directory provisioning, framework module
  manifest, and command execution with an isolated environment.

Non-functional requirements
- No OS-level isolation; a sandbox is a plain directory plus a composed environment.
"""

from alliage_sandbox.sandbox.command_runner import (
    Command,
    CommandHandle,
    CommandRunner,
    CompletionReason,
    CompletionSignal,
    ProcessSpawner,
    spawn_shell,
)
from alliage_sandbox.sandbox.environment import (
    HostEnvironment,
    build_command_environment,
    executable_search_path,
    module_search_path,
)
from alliage_sandbox.sandbox.manifest import (
    ModuleDefinition,
    ModuleLocator,
    ModuleManifestBuilder,
    ModuleResolutionError,
    load_resolution_overrides,
)
from alliage_sandbox.sandbox.provisioner import ProvisionedEntry, Provisioner, ProvisionKind
from alliage_sandbox.sandbox.sandbox_manager import (
    Sandbox,
    SandboxError,
    SandboxNotInitializedError,
)

__all__ = [
    "Command",
    "CommandHandle",
    "CommandRunner",
    "CompletionReason",
    "CompletionSignal",
    "HostEnvironment",
    "ModuleDefinition",
    "ModuleLocator",
    "ModuleManifestBuilder",
    "ModuleResolutionError",
    "ProcessSpawner",
    "ProvisionKind",
    "ProvisionedEntry",
    "Provisioner",
    "Sandbox",
    "SandboxError",
    "SandboxNotInitializedError",
    "build_command_environment",
    "executable_search_path",
    "load_resolution_overrides",
    "module_search_path",
    "spawn_shell",
]
