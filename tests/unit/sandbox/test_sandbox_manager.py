"""
alliage-sandbox — unit tests for the sandbox lifecycle

File: tests/unit/sandbox/test_sandbox_manager.py

Purpose
- Validate ``Sandbox`` provisioning, guarded accessors, command delegation and cleanup.

What this test file should cover
- The not-initialized precondition on config access and every command.
- The on-disk layout produced by ``init()`` and the module manifest.
- Re-initialization from a clean directory, ``clear()`` and ``async with`` usage.

Functional requirements
- Offline only; commands go through a recording spawner.
"""

from __future__ import annotations

import json
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from alliage_sandbox.sandbox.sandbox_manager import Sandbox, SandboxNotInitializedError

_NOT_INITIALIZED = re.escape('The sandbox must be initialized by calling the "init()" method')
_HOST = {
    "PATH": "test-path1:test-path2",
    "NODE_PATH": "test-node-path1:test-node-path2",
    "HOME": "/home/alliage",
}


@dataclass
class _RecordingLogger:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def info(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class _ExitedProcess:
    pid = 100
    returncode = 0

    async def wait(self) -> int:
        return 0


@dataclass
class _RecordingSpawner:
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def __call__(
        self,
        command_line: str,
        *,
        cwd: Path,
        env: dict[str, str],
        capture_output: bool,
    ) -> _ExitedProcess:
        self.calls.append({"command_line": command_line, "cwd": cwd, "env": dict(env)})
        return _ExitedProcess()


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def _project(tmp_path: Path, config: dict[str, Any] | None = None) -> tuple[Path, Path]:
    project = tmp_path / "project"
    scenario = project / "scenarios" / "basic"
    (scenario / "src").mkdir(parents=True)
    (scenario / "src" / "index.js").write_text("module.exports = {};\n", encoding="utf-8")
    (project / "config").mkdir()
    (project / "config" / "default.yml").write_text("env: test\n", encoding="utf-8")
    (project / "node_modules" / ".bin").mkdir(parents=True)

    _write_json(
        project / "packages" / "alliage-fake-module" / "dist" / "package.json",
        {
            "name": "alliage-fake-module",
            "alliageManifest": {"type": "module", "dependencies": ["alliage-dummy-module"]},
        },
    )
    _write_json(
        project / "packages" / "alliage-other-fake-module" / "package.json",
        {"name": "alliage-other-fake-module", "alliageManifest": {"type": "compound"}},
    )
    _write_json(
        scenario / "alliage-sandbox-config.json",
        config
        if config is not None
        else {
            "copyFiles": ["<scenarioRoot>/src", "<projectRoot>/config"],
            "linkModules": {
                "alliage-fake-module": "<projectRoot>/packages/alliage-fake-module/dist"
            },
            "alliageModules": [
                "alliage-fake-module",
                "<projectRoot>/packages/alliage-other-fake-module",
            ],
        },
    )
    return project, scenario


def _sandbox(
    tmp_path: Path,
    *,
    spawner: _RecordingSpawner | None = None,
    logger: _RecordingLogger | None = None,
    config: dict[str, Any] | None = None,
) -> Sandbox:
    project, scenario = _project(tmp_path, config)
    return Sandbox(
        scenario,
        project_path=project,
        sandbox_path=tmp_path / "sandboxes",
        environ=_HOST,
        spawner=spawner or _RecordingSpawner(),
        token_factory=lambda: "abc123",
        logger=logger or _RecordingLogger(),
    )


def test_paths_are_available_before_init(tmp_path: Path) -> None:
    sandbox = _sandbox(tmp_path)

    assert sandbox.get_path() == tmp_path / "sandboxes" / "abc123"
    assert sandbox.get_project_path() == tmp_path / "project"
    assert sandbox.get_scenario_path() == tmp_path / "project" / "scenarios" / "basic"
    assert sandbox.is_initialized is False
    assert not sandbox.path.exists()


def test_config_access_requires_init(tmp_path: Path) -> None:
    sandbox = _sandbox(tmp_path)

    with pytest.raises(SandboxNotInitializedError, match=_NOT_INITIALIZED):
        sandbox.get_config()
    with pytest.raises(SandboxNotInitializedError, match=_NOT_INITIALIZED):
        sandbox.get_modules_manifest()


@pytest.mark.parametrize("command", ["install", "build", "run"])
async def test_commands_require_init(tmp_path: Path, command: str) -> None:
    spawner = _RecordingSpawner()
    sandbox = _sandbox(tmp_path, spawner=spawner)

    with pytest.raises(SandboxNotInitializedError, match=_NOT_INITIALIZED):
        await getattr(sandbox, command)(["a"])
    assert spawner.calls == []


async def test_init_provisions_the_sandbox(tmp_path: Path) -> None:
    logger = _RecordingLogger()
    sandbox = _sandbox(tmp_path, logger=logger)
    project = tmp_path / "project"

    await sandbox.init()

    root = sandbox.path
    assert sandbox.is_initialized is True
    assert (root / "src" / "index.js").read_text(encoding="utf-8") == "module.exports = {};\n"
    assert (root / "config" / "default.yml").is_file()
    assert (root / "node_modules").resolve() == (project / "node_modules").resolve()
    assert (root / "linked_modules" / "alliage-fake-module").resolve() == (
        project / "packages" / "alliage-fake-module" / "dist"
    ).resolve()

    config = sandbox.get_config()
    assert config.command == "node"
    assert config.copy_files == (
        str(project / "scenarios" / "basic" / "src"),
        str(project / "config"),
    )
    expected_manifest = {
        "alliage-fake-module": {
            "module": "alliage-fake-module",
            "deps": ["alliage-dummy-module"],
        }
    }
    assert sandbox.get_modules_manifest() == expected_manifest
    assert json.loads((root / "alliage-modules.json").read_text(encoding="utf-8")) == (
        expected_manifest
    )
    assert logger.names() == [
        "sandbox_provisioned",
        "module_manifest_written",
        "sandbox_initialized",
    ]


async def test_run_spawns_the_framework_script(tmp_path: Path) -> None:
    spawner = _RecordingSpawner()
    sandbox = _sandbox(tmp_path, spawner=spawner)
    await sandbox.init()

    handle = await sandbox.run(["a", "b"])

    script = shlex.quote(str(sandbox.path / "node_modules" / ".bin" / "alliage-scripts"))
    [call] = spawner.calls
    assert call["command_line"] == f"node {script} run a b"
    assert handle.command_line == call["command_line"]
    assert call["cwd"] == sandbox.path
    assert call["env"]["HOME"] == "/home/alliage"
    assert call["env"]["PATH"] == f"test-path1:test-path2:{sandbox.path}/node_modules/.bin"
    assert call["env"]["NODE_PATH"] == (
        f"{sandbox.path}/linked_modules:{sandbox.path}/node_modules:"
        "test-node-path1:test-node-path2"
    )
    assert await handle.wait_completion() == "exit"


async def test_install_and_build_with_env_overlay(tmp_path: Path) -> None:
    spawner = _RecordingSpawner()
    sandbox = _sandbox(tmp_path, spawner=spawner)
    await sandbox.init()

    await sandbox.install(env={"NODE_ENV": "test"})
    await sandbox.build(["--watch"])

    install_call, build_call = spawner.calls
    assert install_call["command_line"].endswith(" install")
    assert install_call["env"]["NODE_ENV"] == "test"
    assert build_call["command_line"].endswith(" build --watch")
    assert "NODE_ENV" not in build_call["env"]


async def test_command_from_config_and_node_variable(tmp_path: Path) -> None:
    spawner = _RecordingSpawner()
    project, scenario = _project(tmp_path, {"command": "<projectRoot>/bin/node"})
    sandbox = Sandbox(
        scenario,
        project_path=project,
        sandbox_path=tmp_path / "sandboxes",
        environ={"NODE": "node16"},
        spawner=spawner,
        token_factory=lambda: "abc123",
        logger=_RecordingLogger(),
    )
    await sandbox.init()

    await sandbox.run()

    assert spawner.calls[0]["command_line"].startswith(f"{project}/bin/node ")


async def test_reinit_starts_from_a_clean_directory(tmp_path: Path) -> None:
    logger = _RecordingLogger()
    sandbox = _sandbox(tmp_path, logger=logger)
    await sandbox.init()
    (sandbox.path / "leftover.txt").write_text("stale", encoding="utf-8")

    await sandbox.init()

    assert not (sandbox.path / "leftover.txt").exists()
    assert (sandbox.path / "src" / "index.js").is_file()
    assert "sandbox_cleared" in logger.names()


async def test_clear_removes_the_sandbox_but_not_the_project(tmp_path: Path) -> None:
    sandbox = _sandbox(tmp_path)
    await sandbox.init()

    await sandbox.clear()
    await sandbox.clear()

    assert not sandbox.path.exists()
    assert (tmp_path / "project" / "node_modules" / ".bin").is_dir()
    assert sandbox.is_initialized is False
    with pytest.raises(SandboxNotInitializedError):
        sandbox.get_config()


async def test_failed_init_leaves_sandbox_uninitialized(tmp_path: Path) -> None:
    sandbox = _sandbox(tmp_path, config={"copyFiles": ["<unknownPlaceholder>/test"]})

    with pytest.raises(FileNotFoundError):
        await sandbox.init()

    assert sandbox.is_initialized is False


async def test_missing_config_file_fails_init(tmp_path: Path) -> None:
    sandbox = _sandbox(tmp_path)
    (sandbox.scenario_path / "alliage-sandbox-config.json").unlink()

    with pytest.raises(FileNotFoundError):
        await sandbox.init()


async def test_async_context_manager(tmp_path: Path) -> None:
    sandbox = _sandbox(tmp_path)

    async with sandbox as active:
        assert active is sandbox
        assert sandbox.path.is_dir()
        assert sandbox.is_initialized

    assert not sandbox.path.exists()


@pytest.mark.parametrize("token", ["../escape", "..", ".", ""])
def test_token_must_be_a_plain_directory_name(tmp_path: Path, token: str) -> None:
    project, scenario = _project(tmp_path)

    with pytest.raises(ValueError, match="plain directory name"):
        Sandbox(
            scenario,
            project_path=project,
            sandbox_path=tmp_path / "sandboxes",
            environ={},
            token_factory=lambda: token,
        )


def test_default_tokens_are_unique(tmp_path: Path) -> None:
    project, scenario = _project(tmp_path)

    first = Sandbox(scenario, project_path=project, sandbox_path=tmp_path, environ={})
    second = Sandbox(scenario, project_path=project, sandbox_path=tmp_path, environ={})

    assert first.path != second.path
    assert first.path.parent == second.path.parent == tmp_path
