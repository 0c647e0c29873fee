"""Command-line interface for specforge."""

from specforge.ui.cli import build_parser, run_cli

__all__ = ["build_parser", "run_cli"]
