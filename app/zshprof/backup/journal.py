"""Rollback journal for restore operations.

Every completed restore step records its inverse here. On failure the
journal is replayed newest-first; on success it is discarded.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RemoveCreated:
    """Undo a file that did not exist before the restore: delete it.

    Attributes:
        path: File created by the restore.
    """

    path: Path


@dataclass(frozen=True, slots=True)
class RestoreMoved:
    """Undo a move-aside: put the user's file back under its own name.

    Attributes:
        original: Path the file was moved away from.
        aside: Path it was moved to.
    """

    original: Path
    aside: Path


@dataclass(frozen=True, slots=True)
class RestoreOverwritten:
    """Undo an overwrite: put the saved prior content back.

    Attributes:
        original: Path that was overwritten.
        saved_copy: Copy of the prior content in the scratch directory.
    """

    original: Path
    saved_copy: Path


InverseAction = RemoveCreated | RestoreMoved | RestoreOverwritten


def _remove_path(path: Path) -> None:
    """Remove a file or symlink if something is there."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _lexists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def undo(action: InverseAction) -> None:
    """Apply one inverse action.

    Args:
        action: The inverse action to apply.

    Raises:
        FileNotFoundError: If the data needed to undo is gone.
        OSError: If the filesystem operation fails.
    """
    match action:
        case RemoveCreated(path=path):
            _remove_path(path)
            logger.info("Rolled back: removed %s", path)
        case RestoreMoved(original=original, aside=aside):
            if not _lexists(aside):
                msg = f"Moved-aside file {aside} no longer exists; cannot put back {original}"
                raise FileNotFoundError(msg)
            _remove_path(original)
            os.replace(aside, original)
            logger.info("Rolled back: moved %s back to %s", aside, original)
        case RestoreOverwritten(original=original, saved_copy=saved_copy):
            if not _lexists(saved_copy):
                msg = f"Saved copy {saved_copy} no longer exists; cannot restore prior content of {original}"
                raise FileNotFoundError(msg)
            _remove_path(original)
            shutil.move(saved_copy, original)
            logger.info("Rolled back: restored prior content of %s", original)


@dataclass(slots=True)
class RollbackJournal:
    """In-memory list of inverse actions for one restore attempt.

    Attributes:
        actions: Recorded inverse actions, oldest first.
    """

    actions: list[InverseAction] = field(default_factory=list)

    def record(self, action: InverseAction) -> None:
        """Record the inverse of a step that just completed."""
        self.actions.append(action)

    def rollback(self) -> list[str]:
        """Undo every recorded step, newest first.

        Every action is attempted even if an earlier one fails.

        Returns:
            Error descriptions for actions that could not be undone;
            empty when the rollback was complete.
        """
        errors: list[str] = []
        for action in reversed(self.actions):
            try:
                undo(action)
            except OSError as e:
                logger.error("Rollback step failed: %s", e)
                errors.append(str(e))
        self.actions.clear()
        return errors

    def discard(self) -> None:
        """Forget all recorded actions after a successful restore."""
        self.actions.clear()

    def __len__(self) -> int:
        return len(self.actions)
