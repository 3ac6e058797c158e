"""Unit tests for the rollback journal."""

from pathlib import Path

from zshprof.backup.journal import (
    RemoveCreated,
    RestoreMoved,
    RestoreOverwritten,
    RollbackJournal,
    undo,
)


class TestUndo:
    """Tests for individual inverse actions."""

    def test_remove_created(self, tmp_path: Path) -> None:
        """A created file is deleted."""
        path = tmp_path / ".zshrc"
        path.write_text("restored")

        undo(RemoveCreated(path))

        assert not path.exists()

    def test_remove_created_symlink(self, tmp_path: Path) -> None:
        """A created symlink is deleted without touching its target."""
        target = tmp_path / "target"
        target.write_text("keep me")
        link = tmp_path / "link"
        link.symlink_to(target)

        undo(RemoveCreated(link))

        assert not link.is_symlink()
        assert target.read_text() == "keep me"

    def test_restore_moved(self, tmp_path: Path) -> None:
        """A moved-aside file returns under its own name."""
        original = tmp_path / ".zshrc"
        aside = tmp_path / ".zshrc.zshprofbackup"
        aside.write_text("user content")
        original.write_text("restored content")

        undo(RestoreMoved(original, aside))

        assert original.read_text() == "user content"
        assert not aside.exists()

    def test_restore_overwritten(self, tmp_path: Path) -> None:
        """Overwritten content comes back from the saved copy."""
        original = tmp_path / ".zshrc"
        saved = tmp_path / "scratch-zshrc"
        original.write_text("restored content")
        saved.write_text("prior content")

        undo(RestoreOverwritten(original, saved))

        assert original.read_text() == "prior content"
        assert not saved.exists()


class TestRollbackJournal:
    """Tests for RollbackJournal."""

    def test_rollback_runs_newest_first(self, tmp_path: Path) -> None:
        """Move-aside then write is undone as remove then move back."""
        original = tmp_path / ".zshrc"
        aside = tmp_path / ".zshrc.zshprofbackup"
        original.write_text("user content")

        journal = RollbackJournal()
        original.rename(aside)
        journal.record(RestoreMoved(original, aside))
        original.write_text("restored content")
        journal.record(RemoveCreated(original))

        errors = journal.rollback()

        assert errors == []
        assert original.read_text() == "user content"
        assert not aside.exists()
        assert len(journal) == 0

    def test_rollback_reports_missing_saved_copy(self, tmp_path: Path) -> None:
        """An undo whose data vanished is reported, the others still run."""
        created = tmp_path / ".zlogin"
        created.write_text("restored")
        overwritten = tmp_path / ".zshrc"
        overwritten.write_text("restored")

        journal = RollbackJournal()
        journal.record(RestoreOverwritten(overwritten, tmp_path / "gone"))
        journal.record(RemoveCreated(created))

        errors = journal.rollback()

        assert len(errors) == 1
        assert "no longer exists" in errors[0]
        assert not created.exists()

    def test_discard(self, tmp_path: Path) -> None:
        """discard() forgets actions without applying them."""
        path = tmp_path / "file"
        path.write_text("x")
        journal = RollbackJournal()
        journal.record(RemoveCreated(path))

        journal.discard()

        assert len(journal) == 0
        assert journal.rollback() == []
        assert path.exists()
