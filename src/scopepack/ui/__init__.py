"""CLI router and terminal rendering."""

from scopepack.ui.cli import CLIError, build_parser, run_cli
from scopepack.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
