"""Module entrypoint for ``python -m specforge``."""

from __future__ import annotations

from specforge.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
