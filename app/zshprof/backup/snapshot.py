"""Final safety snapshot of the zshprof data directory.

Taken right before uninstall touches anything, so that profiles,
history and backups can still be recovered by hand afterwards.
"""

import logging
import tarfile
from datetime import datetime
from pathlib import Path

from zshprof.core.paths import get_backups_dir

logger = logging.getLogger(__name__)

FINAL_SNAPSHOT_PREFIX = "final-snapshot-"
FINAL_SNAPSHOT_SUFFIX = ".tar.gz"


class SnapshotError(Exception):
    """Raised when the safety snapshot cannot be written."""


def final_snapshot_path(profiles_dir: Path, now: datetime | None = None, *, directory: Path | None = None) -> Path:
    """Get a timestamped path for a new final snapshot.

    Args:
        profiles_dir: zshprof data directory.
        now: Timestamp to use. Defaults to the current local time.
        directory: Where to put the snapshot. Defaults to the backups
            directory inside profiles_dir.

    Returns:
        Path like ~/.zsh-profiles/backups/final-snapshot-20250101-120000.tar.gz.
    """
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    target = directory or get_backups_dir(profiles_dir)
    return target / f"{FINAL_SNAPSHOT_PREFIX}{stamp}{FINAL_SNAPSHOT_SUFFIX}"


def _is_final_snapshot(name: str) -> bool:
    base = name.rsplit("/", 1)[-1]
    return base.startswith(FINAL_SNAPSHOT_PREFIX) and base.endswith(FINAL_SNAPSHOT_SUFFIX)


def create_final_snapshot(profiles_dir: Path, output_path: Path) -> int:
    """Archive the whole data directory into a gzip tarball.

    Members are stored under the data directory's own name. Earlier final
    snapshots and the output file itself are left out.

    Args:
        profiles_dir: zshprof data directory to archive.
        output_path: Tarball to create.

    Returns:
        Size of the tarball in bytes.

    Raises:
        SnapshotError: If the source is missing or archiving fails.
    """
    if not profiles_dir.is_dir():
        msg = f"Profiles directory does not exist: {profiles_dir}"
        raise SnapshotError(msg)

    output = output_path.resolve()

    def exclude(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
        if _is_final_snapshot(info.name):
            return None
        return info

    logger.info("Creating safety snapshot of %s at %s", profiles_dir, output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(output_path, "w:gz") as tar:
            for child in sorted(profiles_dir.iterdir()):
                if child.resolve() == output:
                    continue
                tar.add(child, arcname=f"{profiles_dir.name}/{child.name}", filter=exclude)
        output_path.chmod(0o600)
        size = output_path.stat().st_size
    except (OSError, tarfile.TarError) as e:
        if output_path.exists():
            output_path.unlink()
        msg = f"Failed to create safety snapshot at {output_path}: {e}"
        raise SnapshotError(msg) from e

    logger.info("Safety snapshot written (%d bytes)", size)
    return size
