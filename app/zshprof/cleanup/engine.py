"""Cleanup of zshprof-generated files and directories.

Used by uninstall. Per-item failures are collected in a CleanupReport;
the caller decides whether they are fatal.
"""

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from zshprof.core.paths import (
    APP_NAME,
    BACKUPS_DIRNAME,
    CONFIG_FILENAME,
    DATA_DIR_NAME,
    OWNED_SUBDIRS,
    ZSHENV_FILENAME,
)

logger = logging.getLogger(__name__)

# Header written at the top of every generated environment file
MANAGED_MARKER = f"Managed by {APP_NAME}"

ProgressCallback = Callable[[str], None]


class CleanupError(Exception):
    """Raised when cleanup is asked to do something unsafe."""


@dataclass(frozen=True, slots=True)
class CleanupIssue:
    """A path that could not be cleaned up.

    Attributes:
        path: Path that failed.
        error: What went wrong.
    """

    path: Path
    error: str


@dataclass(frozen=True, slots=True)
class CleanupConfig:
    """What to clean up.

    Attributes:
        profiles_dir: zshprof data directory.
        home_dir: User's home directory.
        zshenv_relpath: Generated environment file, relative to home_dir.
        keep_backups: Preserve the backups/ subdirectory.
    """

    profiles_dir: Path
    home_dir: Path
    zshenv_relpath: str = ZSHENV_FILENAME
    keep_backups: bool = False

    @property
    def zshenv_path(self) -> Path:
        return self.home_dir / self.zshenv_relpath


@dataclass(slots=True)
class CleanupReport:
    """Summary of a cleanup run.

    Attributes:
        removed_files: Files removed.
        removed_dirs: Directories removed.
        preserved: Paths deliberately left in place.
        errors: Per-item failures.
    """

    removed_files: list[Path] = field(default_factory=list)
    removed_dirs: list[Path] = field(default_factory=list)
    preserved: list[Path] = field(default_factory=list)
    errors: list[CleanupIssue] = field(default_factory=list)

    @property
    def is_successful(self) -> bool:
        """True when nothing failed."""
        return not self.errors

    @property
    def total_removed(self) -> int:
        return len(self.removed_files) + len(self.removed_dirs)

    def add_error(self, path: Path, error: str) -> None:
        self.errors.append(CleanupIssue(path=path, error=error))


def is_generated_zshenv(content: str, profiles_dir: Path | None = None) -> bool:
    """Check if environment file content was written by zshprof.

    The file qualifies if it carries the managed-section header, or if it
    sets ZDOTDIR and mentions the data directory.

    Args:
        content: File content.
        profiles_dir: Data directory; its name is accepted as a marker too.

    Returns:
        True if the content carries zshprof's markers.
    """
    if MANAGED_MARKER in content:
        return True
    if "ZDOTDIR" not in content:
        return False
    dir_names = {DATA_DIR_NAME}
    if profiles_dir is not None:
        dir_names.add(profiles_dir.name)
    return any(name in content for name in dir_names)


def remove_generated_zshenv(config: CleanupConfig, report: CleanupReport) -> None:
    """Remove the environment file only if zshprof generated it.

    A file that cannot be read is kept and reported as an error.
    """
    zshenv = config.zshenv_path
    if not zshenv.exists() and not zshenv.is_symlink():
        logger.debug("No %s to remove", zshenv)
        return

    if zshenv.is_symlink():
        # A link is never something zshprof writes
        logger.info("Preserved %s (symlink, not created by zshprof)", zshenv)
        report.preserved.append(zshenv)
        return

    try:
        content = zshenv.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        report.add_error(zshenv, f"Cannot read {zshenv}, leaving it in place: {e}")
        return

    if not is_generated_zshenv(content, config.profiles_dir):
        logger.info("Preserved %s (not created by zshprof)", zshenv)
        report.preserved.append(zshenv)
        return

    try:
        zshenv.unlink()
    except OSError as e:
        report.add_error(zshenv, f"Failed to remove generated {zshenv}: {e}")
        return
    report.removed_files.append(zshenv)
    logger.info("Removed generated %s", zshenv)


def _remove_tree(path: Path, report: CleanupReport) -> None:
    try:
        shutil.rmtree(path)
    except OSError as e:
        report.add_error(path, f"Failed to remove {path}: {e}")
        return
    report.removed_dirs.append(path)
    logger.info("Removed %s", path)


def remove_profiles_dir(
    config: CleanupConfig,
    report: CleanupReport,
    progress: ProgressCallback | None = None,
) -> None:
    """Remove the data directory, or everything but backups/ in it."""
    profiles_dir = config.profiles_dir
    if not profiles_dir.exists():
        logger.debug("No %s to remove", profiles_dir)
        return

    if not config.keep_backups:
        _remove_tree(profiles_dir, report)
        return

    for name in OWNED_SUBDIRS:
        subdir = profiles_dir / name
        if not subdir.exists():
            continue
        if progress is not None:
            progress(f"Removing {name}/...")
        _remove_tree(subdir, report)

    config_file = profiles_dir / CONFIG_FILENAME
    if config_file.exists():
        try:
            config_file.unlink()
        except OSError as e:
            report.add_error(config_file, f"Failed to remove {config_file}: {e}")
        else:
            report.removed_files.append(config_file)
            logger.info("Removed %s", config_file)

    backups = profiles_dir / BACKUPS_DIRNAME
    if backups.exists():
        report.preserved.append(backups)
        logger.info("Preserved %s", backups)


def _check_config(config: CleanupConfig) -> None:
    """Refuse configurations that would delete user data wholesale."""
    home = config.home_dir.resolve()
    profiles = config.profiles_dir.resolve()
    if profiles == home or profiles in home.parents:
        msg = f"Refusing to remove {config.profiles_dir}: it contains the home directory"
        raise CleanupError(msg)

    relpath = Path(config.zshenv_relpath)
    if relpath.is_absolute() or ".." in relpath.parts or not relpath.parts:
        msg = f"Environment file path must be relative to the home directory: {config.zshenv_relpath!r}"
        raise CleanupError(msg)


def cleanup_all(config: CleanupConfig, progress: ProgressCallback | None = None) -> CleanupReport:
    """Remove every zshprof-generated artifact.

    Args:
        config: What to clean up.
        progress: Called with a short message before each step.

    Returns:
        CleanupReport; per-item failures are recorded, not raised.

    Raises:
        CleanupError: If the configuration points at the home directory
            itself or at an environment file outside it.
    """
    _check_config(config)
    report = CleanupReport()

    if progress is not None:
        progress(f"Removing generated {config.zshenv_relpath}...")
    remove_generated_zshenv(config, report)

    if progress is not None:
        progress("Removing profiles and configuration...")
    remove_profiles_dir(config, report, progress)

    logger.info(
        "Cleanup finished: %d removed, %d preserved, %d errors",
        report.total_removed,
        len(report.preserved),
        len(report.errors),
    )
    return report
