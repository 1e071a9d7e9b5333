"""Output rendering abstraction for the scopepack CLI.

File: src/scopepack/ui/render.py

Purpose
- Provide a thin rendering layer for human-readable CLI output on top of ``rich``.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Progress and summaries go to stdout; warnings and errors are styled, errors
  go to stderr.
- Text is printed literally: paths containing ``[`` are never read as markup.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from rich.console import Console
from rich.style import Style
from rich.text import Text

if TYPE_CHECKING:
    from collections.abc import Sequence

_S_HEADING = Style(bold=True)
_S_KEY = Style(color="cyan")
_S_STEP = Style(dim=True)
_S_WARNING = Style(color="yellow")
_S_ERROR = Style(color="red", bold=True)
_S_OK = Style(color="green", bold=True)


def _color_allowed(no_color_flag: bool) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class CLIRenderer:
    """Thin CLI output renderer.

    Produces deterministic plain text when stdout is not a terminal.
    """

    def __init__(self, *, no_color: bool = False, verbose: bool = False) -> None:
        self.verbose = verbose
        color = _color_allowed(no_color)
        self._out = Console(no_color=not color, highlight=False, soft_wrap=True)
        self._err = Console(stderr=True, no_color=not color, highlight=False, soft_wrap=True)

    def kv(self, key: str, value: object) -> None:
        line = Text()
        line.append(f"{key}:", style=_S_KEY)
        line.append(f" {value}")
        self._out.print(line)

    def text(self, line: str) -> None:
        self._out.print(Text(line))

    def step(self, line: str) -> None:
        """Print one pipeline progress line."""

        self._out.print(Text(f"  {line}", style=_S_STEP))

    def blank(self) -> None:
        self._out.print()

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._out.print()
        self._out.print(Text(title, style=_S_HEADING))

    def warning(self, text: str) -> None:
        self._out.print(Text(f"  Warning: {text}", style=_S_WARNING))

    def error(self, text: str) -> None:
        self._err.print(Text(f"error: {text}", style=_S_ERROR))

    def ok(self, label: str) -> None:
        self._out.print(Text(label, style=_S_OK))

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._out.print(Text(f"  {prefix}{entry}"))

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted plain-text table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._out.print(Text(f"  {_pad(list(headers))}", style=_S_KEY))
        self._out.print(Text(f"  {'  '.join('-' * w for w in widths)}"))
        for row in rows:
            self._out.print(Text(f"  {_pad(list(row))}"))


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
