"""Module entrypoint for ``python -m alliage_sandbox``."""

from __future__ import annotations

from alliage_sandbox.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
