"""Removal of backed up originals from the home directory.

Originals are only removed once the manifest describing them is on disk
and the snapshot copy verifies against it. Each file is handled
independently: one failure never stops the remaining removals.
"""

import logging
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from zshprof.backup.manifest import BackedUpFile, BackupManifest, verify_checksum
from zshprof.core.paths import get_backup_manifest_path

logger = logging.getLogger(__name__)


class RelocationError(Exception):
    """Raised when relocation must not start at all."""


class RelocationStatus(str, Enum):
    """Outcome of relocating a single file.

    Attributes:
        REMOVED: The original was removed from the home directory.
        SKIPPED_MISSING: The original no longer exists.
        SKIPPED_NOT_CAPTURED: The snapshot copy is absent or does not
            match the manifest, so the original was kept.
        FAILED: Removal was attempted and failed.
    """

    REMOVED = "removed"
    SKIPPED_MISSING = "skipped_missing"
    SKIPPED_NOT_CAPTURED = "skipped_not_captured"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RelocationResult:
    """Result of relocating one manifest entry.

    Attributes:
        path: Original absolute path.
        status: What happened to it.
        error: Error message for failed or not-captured entries.
    """

    path: str
    status: RelocationStatus
    error: str | None = None


@dataclass(slots=True)
class RelocationReport:
    """Partial-success summary of a relocation run.

    Attributes:
        results: One result per manifest entry, in manifest order.
    """

    results: list[RelocationResult] = field(default_factory=list)

    def _with_status(self, status: RelocationStatus) -> list[RelocationResult]:
        return [r for r in self.results if r.status == status]

    @property
    def removed(self) -> list[RelocationResult]:
        """Entries removed from the home directory."""
        return self._with_status(RelocationStatus.REMOVED)

    @property
    def failed(self) -> list[RelocationResult]:
        """Entries left in place because of an error."""
        return self._with_status(RelocationStatus.FAILED) + self._with_status(
            RelocationStatus.SKIPPED_NOT_CAPTURED
        )

    @property
    def is_successful(self) -> bool:
        """True when nothing failed."""
        return not self.failed


def _make_removable(target: Path) -> None:
    """Grant owner write permission on a read-only file and its directory.

    The permission change is not undone: the file is about to be removed.
    """
    parent = target.parent
    parent_mode = stat.S_IMODE(parent.stat().st_mode)
    if not parent_mode & stat.S_IWUSR:
        parent.chmod(parent_mode | stat.S_IWUSR)
        logger.debug("Made %s writable for removal", parent)

    file_mode = stat.S_IMODE(target.stat().st_mode)
    if not file_mode & stat.S_IWUSR:
        target.chmod(file_mode | stat.S_IWUSR)
        logger.debug("Made %s writable for removal", target)


def _relocate_one(entry: BackedUpFile, home_dir: Path, backup_dir: Path) -> RelocationResult:
    """Remove one original after checking its snapshot."""
    original = home_dir / entry.snapshot

    if not original.exists() and not original.is_symlink():
        logger.info("Skipping %s (no longer exists)", original)
        return RelocationResult(path=str(original), status=RelocationStatus.SKIPPED_MISSING)

    snapshot = backup_dir / entry.snapshot
    if not verify_checksum(snapshot, entry.checksum):
        msg = f"Backup copy {snapshot} is missing or does not match the manifest; original kept"
        logger.warning(msg)
        return RelocationResult(
            path=str(original),
            status=RelocationStatus.SKIPPED_NOT_CAPTURED,
            error=msg,
        )

    try:
        if original.is_symlink():
            # Remove the link itself, never its target
            original.unlink()
        else:
            if not os.access(original, os.W_OK) or not os.access(original.parent, os.W_OK):
                _make_removable(original)
            original.unlink()
    except OSError as e:
        logger.warning("Failed to remove %s after backup: %s", original, e)
        return RelocationResult(path=str(original), status=RelocationStatus.FAILED, error=str(e))

    logger.info("Moved %s to backup (removed from home)", original)
    return RelocationResult(path=str(original), status=RelocationStatus.REMOVED)


def move_configs_to_backup(
    home_dir: Path,
    manifest: BackupManifest,
    backup_dir: Path,
) -> RelocationReport:
    """Remove backed up originals from the home directory.

    Must only be called after create_backup() succeeded. Missing
    originals are skipped, so re-running after an interruption is safe.

    Args:
        home_dir: Home directory holding the originals.
        manifest: Manifest returned by create_backup().
        backup_dir: Directory holding that manifest and its copies.

    Returns:
        RelocationReport with one result per manifest entry.

    Raises:
        RelocationError: If no manifest has been written to backup_dir.
    """
    manifest_path = get_backup_manifest_path(backup_dir)
    if not manifest_path.is_file():
        msg = (
            f"No backup manifest at {manifest_path}; refusing to remove any "
            "shell configuration before it has been backed up."
        )
        raise RelocationError(msg)

    report = RelocationReport()
    for entry in manifest.files:
        report.results.append(_relocate_one(entry, home_dir, backup_dir))

    logger.info(
        "Relocation finished: %d removed, %d failed",
        len(report.removed),
        len(report.failed),
    )
    return report
