"""Sandbox lifecycle: provisioning, module manifest and command execution for one scenario."""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from alliage_sandbox.config.loader import load_sandbox_config
from alliage_sandbox.config.placeholders import PlaceholderResolver
from alliage_sandbox.config.schema import SandboxConfig, default_config
from alliage_sandbox.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_PROJECT_ROOT,
    DEFAULT_SANDBOX_ROOT,
    NOT_INITIALIZED_MESSAGE,
)
from alliage_sandbox.sandbox.command_runner import (
    Command,
    CommandHandle,
    CommandRunner,
    ProcessSpawner,
)
from alliage_sandbox.sandbox.environment import HostEnvironment, module_search_path
from alliage_sandbox.sandbox.manifest import ModuleLocator, ModuleManifestBuilder, ModulesManifest
from alliage_sandbox.sandbox.provisioner import Provisioner
from alliage_sandbox.utils.fs import remove_tree

if TYPE_CHECKING:
    from types import TracebackType


class SandboxError(RuntimeError):
    """Base error for sandbox lifecycle failures."""


class SandboxNotInitializedError(SandboxError):
    """Raised when config access or a command happens before ``init()``."""

    def __init__(self) -> None:
        super().__init__(NOT_INITIALIZED_MESSAGE)


def random_token() -> str:
    return uuid.uuid4().hex[:12]


class Sandbox:
    """Disposable directory in which one scenario is provisioned and executed.

    ``init()`` always starts from a clean directory: it removes whatever a
    previous ``init()`` left, provisions copies and links, then writes the
    module manifest. Config access and commands are only valid once ``init()``
    has fully succeeded.
    """

    def __init__(
        self,
        scenario_path: str | os.PathLike[str],
        *,
        project_path: str | os.PathLike[str] = DEFAULT_PROJECT_ROOT,
        sandbox_path: str | os.PathLike[str] = DEFAULT_SANDBOX_ROOT,
        config_file_name: str = CONFIG_FILE_NAME,
        environ: Mapping[str, str] | None = None,
        locator: ModuleLocator | None = None,
        spawner: ProcessSpawner | None = None,
        provisioner: Provisioner | None = None,
        token_factory: Callable[[], str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._scenario_path = Path(os.path.abspath(scenario_path))
        self._project_path = Path(os.path.abspath(project_path))
        self._sandbox_root = Path(os.path.abspath(sandbox_path))
        self._token = (token_factory or random_token)()
        if self._token in {"", ".", ".."} or Path(self._token).name != self._token:
            raise ValueError(f"sandbox token must be a plain directory name, got {self._token!r}")
        self._path = self._sandbox_root / self._token
        self._config_file_name = config_file_name

        self._host = (
            HostEnvironment(environ) if environ is not None else HostEnvironment.from_process()
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._resolver = PlaceholderResolver.for_paths(
            project_root=lambda: str(self._project_path),
            scenario_root=lambda: str(self._scenario_path),
        )
        self._provisioner = provisioner if provisioner is not None else Provisioner(logger=logger)
        self._manifest_builder = ModuleManifestBuilder(locator=locator, logger=logger)
        self._runner = CommandRunner(host=self._host, spawner=spawner, logger=logger)

        self._config: SandboxConfig = default_config(self._host.variables)
        self._manifest: ModulesManifest = {}
        self._initialized = False

    async def __aenter__(self) -> Sandbox:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.clear()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def project_path(self) -> Path:
        return self._project_path

    @property
    def scenario_path(self) -> Path:
        return self._scenario_path

    @property
    def sandbox_root(self) -> Path:
        return self._sandbox_root

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def get_path(self) -> Path:
        return self._path

    def get_project_path(self) -> Path:
        return self._project_path

    def get_scenario_path(self) -> Path:
        return self._scenario_path

    def get_config(self) -> SandboxConfig:
        self._raise_if_not_initialized()
        return self._config

    def get_modules_manifest(self) -> ModulesManifest:
        self._raise_if_not_initialized()
        return dict(self._manifest)

    def module_search_path(self) -> list[Path]:
        return module_search_path(self._path, self._host)

    async def init(self) -> None:
        await self.clear()
        await asyncio.to_thread(self._path.mkdir, parents=True, exist_ok=True)

        self._config = await asyncio.to_thread(
            load_sandbox_config,
            self._scenario_path,
            resolver=self._resolver,
            file_name=self._config_file_name,
            environ=self._host.variables,
        )
        await self._provisioner.provision(
            self._config,
            sandbox_path=self._path,
            project_root=self._project_path,
        )
        self._manifest = await self._manifest_builder.build(
            self._config.alliage_modules,
            sandbox_path=self._path,
            search_paths=self.module_search_path(),
        )
        self._initialized = True

        self._logger.info(
            "sandbox_initialized",
            sandbox_path=str(self._path),
            scenario_path=str(self._scenario_path),
            modules=sorted(self._manifest),
        )

    async def clear(self) -> None:
        removed = await asyncio.to_thread(remove_tree, self._path, self._sandbox_root)
        self._initialized = False
        if removed:
            self._logger.info("sandbox_cleared", sandbox_path=str(self._path))

    async def install(
        self,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        capture_output: bool = False,
    ) -> CommandHandle:
        return await self._run_command(
            Command.INSTALL, args, env=env, capture_output=capture_output
        )

    async def build(
        self,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        capture_output: bool = False,
    ) -> CommandHandle:
        return await self._run_command(Command.BUILD, args, env=env, capture_output=capture_output)

    async def run(
        self,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        capture_output: bool = False,
    ) -> CommandHandle:
        return await self._run_command(Command.RUN, args, env=env, capture_output=capture_output)

    async def _run_command(
        self,
        command: Command,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None,
        capture_output: bool,
    ) -> CommandHandle:
        self._raise_if_not_initialized()
        return await self._runner.spawn(
            command,
            args,
            sandbox_path=self._path,
            command=self._config.command,
            env=env,
            capture_output=capture_output,
        )

    def _raise_if_not_initialized(self) -> None:
        if not self._initialized:
            raise SandboxNotInitializedError()


__all__ = ["Sandbox", "SandboxError", "SandboxNotInitializedError", "random_token"]
