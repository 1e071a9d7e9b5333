"""Module entrypoint for ``python -m scopepack``."""

from __future__ import annotations

from scopepack.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
