"""Unit tests for the final safety snapshot."""

import stat
import tarfile
from datetime import datetime
from pathlib import Path

import pytest
from zshprof.backup.snapshot import SnapshotError, create_final_snapshot, final_snapshot_path


class TestFinalSnapshotPath:
    """Tests for final_snapshot_path."""

    def test_default_location(self, tmp_path: Path) -> None:
        """Snapshots go to backups/ with a timestamped name."""
        path = final_snapshot_path(tmp_path, datetime(2025, 3, 1, 14, 5, 9))
        assert path == tmp_path / "backups" / "final-snapshot-20250301-140509.tar.gz"

    def test_custom_directory(self, tmp_path: Path) -> None:
        """A target directory can be given."""
        path = final_snapshot_path(tmp_path / "data", datetime(2025, 3, 1), directory=tmp_path)
        assert path.parent == tmp_path


class TestCreateFinalSnapshot:
    """Tests for create_final_snapshot."""

    def test_archives_data_dir(self, profiles_dir: Path, tmp_path: Path) -> None:
        """Every file ends up in the archive under the data dir name."""
        output = tmp_path / "snapshot.tar.gz"

        size = create_final_snapshot(profiles_dir, output)

        assert size == output.stat().st_size
        with tarfile.open(output, "r:gz") as tar:
            names = tar.getnames()
        assert ".zsh-profiles/config.toml" in names
        assert ".zsh-profiles/profiles/work/.zshrc" in names

    def test_owner_only(self, profiles_dir: Path, tmp_path: Path) -> None:
        """The archive is readable by its owner only."""
        output = tmp_path / "snapshot.tar.gz"
        create_final_snapshot(profiles_dir, output)
        assert stat.S_IMODE(output.stat().st_mode) == 0o600

    def test_excludes_previous_snapshots(self, profiles_dir: Path) -> None:
        """Older final snapshots and the new one are not archived."""
        backups = profiles_dir / "backups"
        backups.mkdir()
        (backups / "final-snapshot-20240101-000000.tar.gz").write_bytes(b"old")
        output = final_snapshot_path(profiles_dir, datetime(2025, 1, 1))

        create_final_snapshot(profiles_dir, output)

        with tarfile.open(output, "r:gz") as tar:
            names = tar.getnames()
        assert not [n for n in names if "final-snapshot-" in n]
        assert ".zsh-profiles/backups" in names

    def test_missing_source(self, tmp_path: Path) -> None:
        """A missing data directory raises SnapshotError."""
        with pytest.raises(SnapshotError, match="does not exist"):
            create_final_snapshot(tmp_path / "missing", tmp_path / "out.tar.gz")

    def test_unwritable_output(self, profiles_dir: Path, tmp_path: Path) -> None:
        """An output path that cannot be created raises SnapshotError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file")

        with pytest.raises(SnapshotError, match="Failed to create safety snapshot"):
            create_final_snapshot(profiles_dir, blocker / "out.tar.gz")
