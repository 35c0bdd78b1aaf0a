"""Process entrypoint: run the CLI and turn escaped exceptions into exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Exit codes of the CLI itself; sandbox commands pass their own code through."""

    SUCCESS = 0
    COMMAND_FAILED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4
    INTERRUPTED = 130


# Bad config and scenario trees that cannot be provisioned.
_SCENARIO_ERROR_TYPES: tuple[type[BaseException], ...] = (
    FileNotFoundError,
    FileExistsError,
    NotADirectoryError,
    PermissionError,
    ValueError,
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m alliage_sandbox`` and the console script."""

    from alliage_sandbox.ui.cli import run_cli

    try:
        return _exit_status(run_cli(argv))
    except SystemExit as exc:
        return _exit_status(exc.code)
    except KeyboardInterrupt:
        _report("interrupted")
        return int(ExitCode.INTERRUPTED)
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = classify_exception(exc)
        if exit_code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            _report(str(exc).strip() or type(exc).__name__)
        return int(exit_code)


def classify_exception(exc: BaseException) -> ExitCode:
    """Map an exception (or anything in its cause chain) to a CLI exit code."""

    for item in _cause_chain(exc):
        if isinstance(item, _SCENARIO_ERROR_TYPES):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _exit_status(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int):
        return raw if 0 <= raw <= 255 else int(ExitCode.INTERNAL_ERROR)
    if isinstance(raw, str) and raw.strip():
        _report(raw.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _cause_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _report(message: str) -> None:
    sys.stderr.write(f"alliage-sandbox: {message.rstrip()}\n")


__all__ = ["ExitCode", "classify_exception", "cli_entrypoint"]
