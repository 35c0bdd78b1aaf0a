"""Command-line surface for alliage-sandbox."""

from alliage_sandbox.ui.cli import CLIError, build_parser, run_cli
from alliage_sandbox.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
