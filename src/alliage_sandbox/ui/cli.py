"""Command-line interface: provision a scenario sandbox and run framework commands in it."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from alliage_sandbox.config.settings import SandboxSettings, load_settings
from alliage_sandbox.main import ExitCode
from alliage_sandbox.observability.logging import setup_logging
from alliage_sandbox.sandbox.command_runner import Command, CommandHandle
from alliage_sandbox.sandbox.sandbox_manager import Sandbox
from alliage_sandbox.ui.render import CLIRenderer, create_renderer
from alliage_sandbox.utils.concurrency import run_with_timeout
from alliage_sandbox.utils.fs import remove_tree

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

TIMEOUT_EXIT_CODE: Final[int] = 124
_TERMINATE_GRACE_SECONDS: Final[float] = 5.0


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = int(ExitCode.COMMAND_FAILED)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="alliage-sandbox",
        description=(
            "alliage-sandbox — disposable sandboxes for Alliage integration scenarios.\n\n"
            "Common workflows:\n"
            "  alliage-sandbox prepare path/to/scenario      Provision and keep a sandbox\n"
            "  alliage-sandbox run path/to/scenario -- a b   Run a scenario, then clean up\n"
            "  alliage-sandbox clean                         Remove every kept sandbox\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--project",
        dest="project_root",
        default=None,
        help="Project root holding node_modules (default: current working directory).",
    )
    common.add_argument(
        "--sandbox-root",
        default=None,
        help="Directory receiving sandboxes (default: ./.alliage-sandboxes).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        help="Logging level name (default: WARNING).",
    )
    common.add_argument(
        "--json-logs",
        action="store_true",
        default=False,
        help="Emit JSON-lines logs on stderr.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )

    scenario = argparse.ArgumentParser(add_help=False)
    scenario.add_argument("scenario", help="Scenario directory holding the sandbox config.")
    scenario.add_argument(
        "--config-name",
        dest="config_file_name",
        default=None,
        help="Sandbox config file name inside the scenario (default: alliage-sandbox-config.json).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    prepare_parser = subparsers.add_parser(
        "prepare",
        parents=[common, scenario],
        help="Provision a sandbox and keep it on disk",
    )
    prepare_parser.set_defaults(handler=_cmd_prepare)

    for command in Command:
        command_parser = subparsers.add_parser(
            command.value,
            parents=[common, scenario],
            help=f"Provision a sandbox and execute the framework {command.value!r} command",
            description=(
                f"Provision a sandbox for SCENARIO and execute the framework {command.value!r}\n"
                "command in it. Options go before SCENARIO; everything after it is\n"
                "forwarded to the command (a leading '--' is dropped).\n\n"
                "Examples:\n"
                f"  alliage-sandbox {command.value} scenarios/basic -- --verbose\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        command_parser.add_argument(
            "--env",
            action="append",
            default=[],
            metavar="KEY=VALUE",
            help="Extra environment variable for the command (repeatable).",
        )
        command_parser.add_argument(
            "--timeout",
            type=float,
            default=None,
            help="Terminate the command after this many seconds.",
        )
        command_parser.add_argument(
            "--keep",
            action="store_true",
            default=None,
            help="Keep the sandbox directory after the command completes.",
        )
        command_parser.add_argument("args", nargs=argparse.REMAINDER)
        command_parser.set_defaults(handler=_cmd_execute, sandbox_command=command)

    clean_parser = subparsers.add_parser(
        "clean",
        parents=[common],
        help="Remove every sandbox under the sandbox root",
    )
    clean_parser.set_defaults(handler=_cmd_clean)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_prepare(args: argparse.Namespace) -> int:
    settings = _settings(args)
    renderer = create_renderer(verbose=args.verbose)
    sandbox = _sandbox(args, settings)

    with structlog.contextvars.bound_contextvars(scenario=str(sandbox.scenario_path)):
        asyncio.run(sandbox.init())

    renderer.kv("sandbox", sandbox.path)
    renderer.modules(sandbox.get_modules_manifest())
    return 0


def _cmd_execute(args: argparse.Namespace) -> int:
    settings = _settings(args)
    renderer = create_renderer(verbose=args.verbose)
    overlay = parse_env_assignments(args.env)
    if args.timeout is not None and args.timeout <= 0:
        raise CLIError("--timeout must be > 0", exit_code=int(ExitCode.CONFIG_ERROR))

    sandbox = _sandbox(args, settings)
    with structlog.contextvars.bound_contextvars(scenario=str(sandbox.scenario_path)):
        return asyncio.run(
            _execute(
                sandbox,
                Command(args.sandbox_command),
                _forwarded_args(args.args),
                env=overlay,
                timeout=args.timeout,
                keep=settings.keep,
                renderer=renderer,
            )
        )


def _cmd_clean(args: argparse.Namespace) -> int:
    settings = _settings(args)
    renderer = create_renderer(verbose=args.verbose)
    root = Path(settings.sandbox_root).resolve()
    if not root.is_dir():
        renderer.text(f"nothing to clean in {root}")
        return 0

    removed = 0
    for entry in sorted(root.iterdir()):
        if remove_tree(entry, root):
            removed += 1
            renderer.detail("removed", entry)
    renderer.kv("removed", removed)
    return 0


async def _execute(
    sandbox: Sandbox,
    command: Command,
    forwarded: Sequence[str],
    *,
    env: Mapping[str, str],
    timeout: float | None,
    keep: bool,
    renderer: CLIRenderer,
) -> int:
    try:
        await sandbox.init()
        handle = await getattr(sandbox, command.value)(forwarded, env=env)
        renderer.detail("sandbox", sandbox.path)
        renderer.detail("command", handle.command_line)

        try:
            if timeout is None:
                await handle.wait_completion()
            else:
                await run_with_timeout(handle.wait_completion(), timeout)
        except TimeoutError:
            await _terminate(handle)
            renderer.warning(f"command timed out after {timeout:g}s")
            return TIMEOUT_EXIT_CODE
        except asyncio.CancelledError:
            await _terminate(handle)
            raise

        if handle.error is not None:
            raise CLIError(
                f"command failed to launch: {handle.error}",
                exit_code=int(ExitCode.COMMAND_FAILED),
            )
        return await _returncode(handle)
    finally:
        if keep:
            renderer.kv("kept sandbox", sandbox.path)
        else:
            await sandbox.clear()


async def _returncode(handle: CommandHandle) -> int:
    returncode = handle.returncode
    if returncode is None and callable(getattr(handle.process, "wait", None)):
        returncode = await handle.process.wait()
    return int(returncode or 0)


async def _terminate(handle: CommandHandle) -> None:
    """SIGTERM the command's process group, escalate to SIGKILL after a grace period.

    Commands are spawned in their own session, so the group id is the shell's
    pid and covers everything the framework script started.
    """

    process: Any = handle.process
    if process is None or getattr(process, "returncode", None) is not None:
        return

    if sys.platform == "win32":
        process.terminate()
        await process.wait()
        return

    pgid = process.pid
    _signal_group(pgid, signal.SIGTERM)
    try:
        await run_with_timeout(process.wait(), _TERMINATE_GRACE_SECONDS)
    except TimeoutError:
        _signal_group(pgid, signal.SIGKILL)
        await process.wait()
    # Sweep group members that outlived the shell.
    _signal_group(pgid, signal.SIGKILL)


def _signal_group(pgid: int, sig: signal.Signals) -> None:
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(pgid, sig)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_env_assignments(assignments: Sequence[str]) -> dict[str, str]:
    """Parse repeated ``KEY=VALUE`` flags; later keys win."""

    overlay: dict[str, str] = {}
    for assignment in assignments:
        key, separator, value = assignment.partition("=")
        if not separator or not key.strip():
            raise CLIError(
                f"invalid --env value {assignment!r}; expected KEY=VALUE",
                exit_code=int(ExitCode.CONFIG_ERROR),
            )
        overlay[key.strip()] = value
    return overlay


def _forwarded_args(raw: Sequence[str]) -> list[str]:
    items = list(raw)
    if items and items[0] == "--":
        items = items[1:]
    return items


def _settings(args: argparse.Namespace) -> SandboxSettings:
    settings = load_settings(
        cli_overrides={
            "sandbox_root": args.sandbox_root,
            "project_root": args.project_root,
            "config_file_name": getattr(args, "config_file_name", None),
            "log_level": args.log_level,
            "keep": getattr(args, "keep", None),
        }
    )
    setup_logging(level=settings.log_level, json_output=args.json_logs)
    return settings


def _sandbox(args: argparse.Namespace, settings: SandboxSettings) -> Sandbox:
    scenario = Path(args.scenario)
    if not scenario.is_dir():
        raise CLIError(
            f"scenario directory not found: {scenario}",
            exit_code=int(ExitCode.CONFIG_ERROR),
        )
    return Sandbox(
        scenario,
        project_path=settings.project_root,
        sandbox_path=settings.sandbox_root,
        config_file_name=settings.config_file_name,
    )


__all__ = [
    "CLIError",
    "TIMEOUT_EXIT_CODE",
    "build_parser",
    "parse_env_assignments",
    "run_cli",
]
