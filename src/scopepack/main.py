"""Executable CLI entrypoint for ``scopepack``.

Uncaught errors are mapped to the process exit-code contract here; anything
that is not a ``ScopepackError`` is an internal error and prints a traceback.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from scopepack.errors import ConfigurationError, DependencyInstallError, ScopepackError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    BUILD_FAILED = 1
    CONFIG_ERROR = 2
    INSTALL_ERROR = 3
    INTERNAL_ERROR = 4


# Checked in order; the first match along the cause chain wins.
_ERROR_EXIT_CODES: tuple[tuple[type[BaseException], ExitCode], ...] = (
    (ConfigurationError, ExitCode.CONFIG_ERROR),
    (DependencyInstallError, ExitCode.INSTALL_ERROR),
    (ScopepackError, ExitCode.BUILD_FAILED),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and always return a contract exit code."""

    try:
        from scopepack.ui.cli import run_cli

        return _coerce_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse exits 2 on usage errors and 0 on --help.
        return _coerce_exit_code(exc.code)
    except Exception as exc:  # noqa: BLE001 - process boundary
        exit_code = _route_exception(exc)
        if exit_code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(f"error: {str(exc).strip() or type(exc).__name__}", file=sys.stderr)
        return int(exit_code)


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(code, int) and code in tuple(ExitCode):
        return code
    if isinstance(code, str) and code.strip():
        print(code.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    for item in _causes(exc):
        for error_type, exit_code in _ERROR_EXIT_CODES:
            if isinstance(item, error_type):
                return exit_code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
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


__all__ = ["ExitCode", "cli_entrypoint"]
