"""Spawn framework commands inside a sandbox and signal their completion once."""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Callable, Mapping, Sequence
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol

import structlog

from alliage_sandbox.constants import BINS_DIR, FRAMEWORK_SCRIPT_NAME
from alliage_sandbox.sandbox.environment import HostEnvironment, build_command_environment

_READ_CHUNK_SIZE = 65536


class Command(StrEnum):
    """Sub-commands understood by the framework script."""

    INSTALL = "install"
    BUILD = "build"
    RUN = "run"


class CompletionReason(StrEnum):
    """Terminal event that completed a command handle."""

    EXIT = "exit"
    CLOSE = "close"
    ERROR = "error"


class ProcessSpawner(Protocol):
    async def __call__(
        self,
        command_line: str,
        *,
        cwd: Path,
        env: Mapping[str, str],
        capture_output: bool,
    ) -> Any: ...


async def spawn_shell(
    command_line: str,
    *,
    cwd: Path,
    env: Mapping[str, str],
    capture_output: bool,
) -> asyncio.subprocess.Process:
    """Default spawner: run ``command_line`` through the system shell.

    The shell leads a new session so the whole command tree can be signalled
    as one process group.
    """

    stdio = asyncio.subprocess.PIPE if capture_output else None
    return await asyncio.create_subprocess_shell(
        command_line,
        cwd=cwd,
        env=dict(env),
        stdout=stdio,
        stderr=stdio,
        start_new_session=True,
    )


class CompletionSignal:
    """One-shot completion notification.

    The first call to :meth:`fire` wins: it records the reason, wakes every
    waiter and cancels the watchers subscribed so far. Later calls are ignored.
    """

    def __init__(self, on_fire: Callable[[CompletionReason], None] | None = None) -> None:
        self._event = asyncio.Event()
        self._reason: CompletionReason | None = None
        self._error: BaseException | None = None
        self._subscriptions: list[asyncio.Task[Any]] = []
        self._on_fire = on_fire

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> CompletionReason | None:
        return self._reason

    @property
    def error(self) -> BaseException | None:
        return self._error

    def subscribe(self, watcher: asyncio.Task[Any]) -> None:
        if self.fired:
            watcher.cancel()
            return
        self._subscriptions.append(watcher)

    def fire(self, reason: CompletionReason, *, error: BaseException | None = None) -> bool:
        if self._event.is_set():
            return False
        self._reason = reason
        self._error = error
        self._event.set()

        subscriptions, self._subscriptions = self._subscriptions, []
        current = asyncio.current_task()
        for watcher in subscriptions:
            if watcher is not current and not watcher.done():
                watcher.cancel()

        if self._on_fire is not None:
            self._on_fire(reason)
        return True

    async def wait(self) -> CompletionReason:
        await self._event.wait()
        assert self._reason is not None
        return self._reason


class CommandHandle:
    """Handle on a spawned sandbox command.

    ``process`` is whatever the spawner returned (``None`` when the launch
    failed). Output is only collected when the command was spawned with
    ``capture_output=True``.
    """

    def __init__(
        self,
        *,
        command_line: str,
        env: Mapping[str, str],
        signal: CompletionSignal,
        process: Any | None = None,
    ) -> None:
        self.command_line = command_line
        self.env = MappingProxyType(dict(env))
        self.process = process
        self._signal = signal
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._exit_watcher: asyncio.Task[None] | None = None
        self._close_watcher: asyncio.Task[None] | None = None

    @property
    def reason(self) -> CompletionReason | None:
        return self._signal.reason

    @property
    def error(self) -> BaseException | None:
        return self._signal.error

    @property
    def returncode(self) -> int | None:
        return getattr(self.process, "returncode", None)

    @property
    def stdout(self) -> str:
        return self._stdout.decode("utf-8", errors="replace")

    @property
    def stderr(self) -> str:
        return self._stderr.decode("utf-8", errors="replace")

    async def wait_completion(self) -> CompletionReason:
        """Resolve once the command exited, closed its output or failed to launch."""

        return await self._signal.wait()

    async def wait_closed(self) -> None:
        """Wait until captured output is fully drained (no-op without capture)."""

        if self._close_watcher is not None:
            await asyncio.gather(self._close_watcher, return_exceptions=True)

    def _watch(self) -> None:
        process = self.process
        if not callable(getattr(process, "wait", None)):
            self._signal.fire(CompletionReason.EXIT)
            return

        self._exit_watcher = asyncio.create_task(self._watch_exit(process))
        self._signal.subscribe(self._exit_watcher)

        streams = [
            (stream, buffer)
            for stream, buffer in (
                (getattr(process, "stdout", None), self._stdout),
                (getattr(process, "stderr", None), self._stderr),
            )
            if stream is not None
        ]
        if streams:
            # Draining keeps running after completion so captured output stays whole.
            self._close_watcher = asyncio.create_task(self._watch_close(streams))

    async def _watch_exit(self, process: Any) -> None:
        try:
            await process.wait()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - surfaced through the handle.
            self._signal.fire(CompletionReason.ERROR, error=exc)
            return
        self._signal.fire(CompletionReason.EXIT)

    async def _watch_close(self, streams: list[tuple[Any, bytearray]]) -> None:
        try:
            await asyncio.gather(*(_drain(stream, buffer) for stream, buffer in streams))
        except Exception as exc:  # noqa: BLE001 - surfaced through the handle.
            self._signal.fire(CompletionReason.ERROR, error=exc)
            return
        self._signal.fire(CompletionReason.CLOSE)


async def _drain(stream: Any, buffer: bytearray) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK_SIZE)
        if not chunk:
            return
        buffer.extend(chunk)


class CommandRunner:
    """Compose the sandbox environment and spawn ``<command> <script> <sub-command> <args>``."""

    def __init__(
        self,
        *,
        host: HostEnvironment | None = None,
        spawner: ProcessSpawner | None = None,
        logger: Any | None = None,
    ) -> None:
        self._host = host if host is not None else HostEnvironment.from_process()
        self._spawner: ProcessSpawner = spawner if spawner is not None else spawn_shell
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def host(self) -> HostEnvironment:
        return self._host

    def script_path(self, sandbox_path: Path) -> Path:
        return sandbox_path / BINS_DIR / FRAMEWORK_SCRIPT_NAME

    def command_line(
        self,
        sub_command: Command | str,
        args: Sequence[str],
        *,
        sandbox_path: Path,
        command: str,
    ) -> str:
        # Arguments are joined verbatim so callers may pass shell syntax through.
        return " ".join(
            [
                command,
                shlex.quote(str(self.script_path(sandbox_path))),
                Command(sub_command).value,
                *args,
            ]
        )

    def environment(
        self, sandbox_path: Path, overlay: Mapping[str, str] | None = None
    ) -> dict[str, str]:
        return build_command_environment(sandbox_path, self._host, overlay)

    async def spawn(
        self,
        sub_command: Command | str,
        args: Sequence[str],
        *,
        sandbox_path: Path,
        command: str,
        env: Mapping[str, str] | None = None,
        capture_output: bool = False,
    ) -> CommandHandle:
        """Spawn the command and return immediately with its handle.

        Launch failures do not raise; they complete the handle with
        :attr:`CompletionReason.ERROR` and expose the exception as ``handle.error``.
        """

        command_line = self.command_line(
            sub_command, args, sandbox_path=sandbox_path, command=command
        )
        run_env = self.environment(sandbox_path, env)
        signal = CompletionSignal(
            on_fire=lambda reason: self._log_completion(command_line, handle, reason)
        )
        handle = CommandHandle(command_line=command_line, env=run_env, signal=signal)

        try:
            handle.process = await self._spawner(
                command_line,
                cwd=sandbox_path,
                env=run_env,
                capture_output=capture_output,
            )
        except OSError as exc:
            signal.fire(CompletionReason.ERROR, error=exc)
            return handle

        self._logger.info(
            "sandbox_command_spawned",
            command_line=command_line,
            cwd=str(sandbox_path),
            env_overlay_keys=sorted(env or {}),
            pid=getattr(handle.process, "pid", None),
        )
        handle._watch()
        return handle

    def _log_completion(
        self, command_line: str, handle: CommandHandle, reason: CompletionReason
    ) -> None:
        self._logger.info(
            "sandbox_command_completed",
            command_line=command_line,
            reason=reason.value,
            returncode=handle.returncode,
            error=None if handle.error is None else repr(handle.error),
        )


__all__ = [
    "Command",
    "CommandHandle",
    "CommandRunner",
    "CompletionReason",
    "CompletionSignal",
    "ProcessSpawner",
    "spawn_shell",
]
