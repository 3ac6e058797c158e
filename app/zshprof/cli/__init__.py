"""CLI package for zshprof.

This package contains the Typer application and its subcommands.
"""

from zshprof.cli.main import app

__all__ = ["app"]
