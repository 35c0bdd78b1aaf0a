"""Plain-text output for the alliage-sandbox CLI.

Everything goes to one injectable stream (stdout by default) so command
handlers can be exercised without a terminal. No colors, no dependencies.
"""

from __future__ import annotations

import sys
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from alliage_sandbox.sandbox.manifest import ModulesManifest

_MODULE_COLUMNS = ("module", "identifier", "deps")


class CLIRenderer:
    """Line-oriented renderer; ``verbose`` gates the detail lines handlers emit."""

    def __init__(self, *, stream: IO[str] | None = None, verbose: bool = False) -> None:
        self.verbose = verbose
        self._stream = stream

    def text(self, line: str = "") -> None:
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(f"{line}\n")

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def detail(self, key: str, value: object) -> None:
        if self.verbose:
            self.kv(key, value)

    def warning(self, message: str) -> None:
        self.text(f"warning: {message}")

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
        """Left-aligned columns separated by two spaces; nothing for zero rows."""

        if not rows:
            return
        cells = [[str(item) for item in headers]]
        cells.extend([str(item) for item in row] + [""] * (len(headers) - len(row)) for row in rows)
        widths = [max(len(line[index]) for line in cells) for index in range(len(headers))]

        for position, line in enumerate(cells):
            self.text("  ".join(cell.ljust(width) for cell, width in zip(line, widths)).rstrip())
            if position == 0:
                self.text("  ".join("-" * width for width in widths))

    def modules(self, manifest: ModulesManifest | Mapping[str, Mapping[str, object]]) -> None:
        """Render a module manifest sorted by module name."""

        if not manifest:
            self.text("no framework modules registered")
            return
        rows = [
            (name, entry.get("module", ""), ", ".join(str(dep) for dep in entry.get("deps") or []))
            for name, entry in sorted(manifest.items())
        ]
        self.table(_MODULE_COLUMNS, rows)


def create_renderer(*, stream: IO[str] | None = None, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(stream=stream, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
