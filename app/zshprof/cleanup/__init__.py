"""Removal of everything zshprof generated."""

from zshprof.cleanup.engine import (
    CleanupConfig,
    CleanupError,
    CleanupIssue,
    CleanupReport,
    cleanup_all,
    is_generated_zshenv,
)

__all__ = [
    "CleanupConfig",
    "CleanupError",
    "CleanupIssue",
    "CleanupReport",
    "cleanup_all",
    "is_generated_zshenv",
]
