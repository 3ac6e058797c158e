"""Backup of the user's shell configuration before zshprof takes over.

The backup is taken once, is idempotent, and must be durable before any
original file is removed from the home directory.
"""

import logging
import os
import platform
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from zshprof import __version__
from zshprof.backup.manifest import (
    MANIFEST_FORMAT_VERSION,
    BackedUpFile,
    BackupManifest,
    BackupMetadata,
    CorruptManifestError,
    DetectedFramework,
    ManifestError,
    find_missing_snapshots,
    load_backup_manifest,
    save_backup_manifest,
    verify_checksum,
)
from zshprof.core.paths import ensure_private_dir, get_backup_manifest_path
from zshprof.frameworks.detector import detect_existing_framework
from zshprof.utils.shell import run_command

logger = logging.getLogger(__name__)

# Shell start-up files captured from the home directory, in capture order
SHELL_CONFIG_FILES: tuple[str, ...] = (
    ".zshrc",
    ".zshenv",
    ".zprofile",
    ".zlogin",
    ".zlogout",
    ".zsh_history",
)

FrameworkDetector = Callable[[Path], DetectedFramework | None]


class BackupError(Exception):
    """Raised when a backup cannot be created or trusted.

    Attributes:
        backup_dir: Backup directory the operation targeted.
    """

    def __init__(self, message: str, backup_dir: Path) -> None:
        super().__init__(message)
        self.backup_dir = backup_dir


@dataclass(frozen=True, slots=True)
class SkippedFile:
    """A candidate file that could not be backed up.

    Attributes:
        path: Absolute path of the candidate.
        error: Why it was left out of the manifest.
    """

    path: str
    error: str


@dataclass(slots=True)
class BackupOutcome:
    """Result of a backup run.

    Attributes:
        manifest: Manifest describing the backup.
        backup_dir: Directory holding the manifest and copies.
        created: False when an existing backup was reused.
        skipped: Candidates that existed but could not be captured.
    """

    manifest: BackupManifest
    backup_dir: Path
    created: bool
    skipped: list[SkippedFile] = field(default_factory=list)


def backup_exists(backup_dir: Path) -> bool:
    """Check if a backup manifest is present.

    Args:
        backup_dir: Pre-existing config backup directory.

    Returns:
        True if the directory contains a manifest file.
    """
    return get_backup_manifest_path(backup_dir).is_file()


def validate_backup(backup_dir: Path) -> BackupManifest:
    """Load a backup manifest and check it describes the snapshot on disk.

    Checksums are not recomputed here; that happens during restore.

    Args:
        backup_dir: Pre-existing config backup directory.

    Returns:
        The validated manifest.

    Raises:
        ManifestNotFoundError: If there is no manifest.
        CorruptManifestError: If the manifest is invalid or references
            files that are missing from the backup directory.
    """
    manifest = load_backup_manifest(get_backup_manifest_path(backup_dir))

    missing = find_missing_snapshots(manifest, backup_dir)
    if missing:
        names = ", ".join(entry.snapshot for entry in missing)
        raise CorruptManifestError(f"Backup at {backup_dir} is missing files listed in its manifest: {names}")

    logger.debug(
        "Validated backup created at %s (%d files)",
        manifest.metadata.created_at.isoformat(),
        len(manifest.files),
    )
    return manifest


def get_shell_version() -> str:
    """Get the installed zsh version string.

    Returns:
        Output of ``zsh --version`` (e.g., "zsh 5.9 (x86_64-pc-linux-gnu)"),
        or "unknown" if zsh cannot be queried.
    """
    try:
        result = run_command(["zsh", "--version"])
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Cannot query zsh version: %s", e)
        return "unknown"
    if not result.success or not result.stdout.strip():
        return "unknown"
    return result.stdout.strip()


def _safe_detect(detector: FrameworkDetector, home_dir: Path) -> DetectedFramework | None:
    """Run framework detection without letting it abort the backup."""
    try:
        return detector(home_dir)
    except Exception as e:  # noqa: BLE001 - detection is advisory only
        logger.warning("Framework detection failed, recording none: %s", e)
        return None


def _remove_existing(path: Path) -> None:
    """Remove a stale copy left behind by an interrupted backup."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _copy_one(source: Path, dest: Path) -> BackedUpFile:
    """Copy one file into the backup and describe it.

    Symlinks are recreated as symlinks; regular files are copied with
    their metadata. The copy is verified against the recorded checksum.

    Raises:
        OSError: If the file cannot be read, copied or verified.
    """
    entry = BackedUpFile.capture(source, dest.name)

    _remove_existing(dest)
    if entry.is_symlink:
        os.symlink(entry.symlink_target or "", dest)
    else:
        shutil.copy2(source, dest, follow_symlinks=False)

    if not verify_checksum(dest, entry.checksum):
        dest.unlink(missing_ok=True)
        msg = f"{source} changed while it was being copied"
        raise OSError(msg)
    return entry


def build_manifest(
    files: list[BackedUpFile],
    detected_framework: DetectedFramework | None,
) -> BackupManifest:
    """Assemble a manifest for files captured now.

    Args:
        files: Captured entries in discovery order.
        detected_framework: Framework found in the home directory, if any.

    Returns:
        A new BackupManifest.
    """
    return BackupManifest(
        metadata=BackupMetadata(
            format_version=MANIFEST_FORMAT_VERSION,
            created_at=datetime.now(UTC),
            shell_version=get_shell_version(),
            os=platform.system() or "unknown",
            tool_version=__version__,
        ),
        detected_framework=detected_framework,
        files=files,
    )


def take_backup(
    home_dir: Path,
    backup_dir: Path,
    *,
    detector: FrameworkDetector = detect_existing_framework,
) -> BackupOutcome:
    """Back up the shell start-up files of a home directory.

    An existing valid backup is returned unchanged, so this is safe to
    call on every start. Files that don't exist are skipped silently;
    files that exist but cannot be copied are reported in the outcome and
    left out of the manifest.

    Args:
        home_dir: Home directory to capture from.
        backup_dir: Directory to create the backup in.
        detector: Framework detector; its result is recorded as-is.

    Returns:
        BackupOutcome describing the backup.

    Raises:
        BackupError: If the backup directory or manifest cannot be
            written, or an existing backup is damaged.
    """
    if backup_exists(backup_dir):
        try:
            manifest = validate_backup(backup_dir)
        except ManifestError as e:
            msg = (
                f"An existing backup at {backup_dir} is damaged: {e}. "
                "It was left untouched; inspect it before running zshprof again."
            )
            raise BackupError(msg, backup_dir) from e
        logger.info("Shell configuration already backed up at %s", backup_dir)
        return BackupOutcome(manifest=manifest, backup_dir=backup_dir, created=False)

    logger.info("Creating backup of shell configuration at %s", backup_dir)

    try:
        ensure_private_dir(backup_dir, "backup")
    except RuntimeError as e:
        msg = f"{e}. No files were moved; your shell configuration is unchanged."
        raise BackupError(msg, backup_dir) from e

    detected = _safe_detect(detector, home_dir)

    files: list[BackedUpFile] = []
    skipped: list[SkippedFile] = []
    for name in SHELL_CONFIG_FILES:
        source = home_dir / name
        if not source.exists() and not source.is_symlink():
            logger.debug("Skipping %s (does not exist)", source)
            continue

        try:
            files.append(_copy_one(source, backup_dir / name))
        except OSError as e:
            logger.warning("Could not back up %s, leaving it out of the backup: %s", source, e)
            skipped.append(SkippedFile(path=str(source), error=str(e)))
            continue
        logger.info("Backed up %s", source)

    manifest = build_manifest(files, detected)

    try:
        save_backup_manifest(manifest, get_backup_manifest_path(backup_dir))
    except ManifestError as e:
        msg = f"{e}. No files were moved; your shell configuration is unchanged."
        raise BackupError(msg, backup_dir) from e

    logger.info("Backup complete: %d files backed up", len(files))
    return BackupOutcome(manifest=manifest, backup_dir=backup_dir, created=True, skipped=skipped)


def create_backup(
    home_dir: Path,
    backup_dir: Path,
    *,
    detector: FrameworkDetector = detect_existing_framework,
) -> BackupManifest:
    """Back up the shell start-up files and return the manifest.

    See take_backup() for the full contract.

    Raises:
        BackupError: If the backup cannot be created.
    """
    return take_backup(home_dir, backup_dir, detector=detector).manifest
