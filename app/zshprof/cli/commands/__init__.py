"""CLI commands for zshprof."""

from zshprof.cli.commands import backup, uninstall

__all__ = ["backup", "uninstall"]
