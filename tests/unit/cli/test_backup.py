"""Unit tests for backup commands.

Tests for the CLI backup create/show/verify commands.
"""

from pathlib import Path

from typer.testing import CliRunner
from zshprof.cli.main import app

runner = CliRunner()


class TestBackupCreate:
    """Tests for zshprof backup create."""

    def test_help(self) -> None:
        """Backup command shows help."""
        result = runner.invoke(app, ["backup", "--help"])
        assert result.exit_code == 0
        assert "create" in result.stdout

    def test_creates_backup(self, home_env: Path, backup_dir: Path) -> None:
        """Create backs up the shell files and leaves them in place."""
        result = runner.invoke(app, ["backup", "create"])

        assert result.exit_code == 0, result.output
        assert "Backed up 3 files" in result.output
        assert (backup_dir / "backup-manifest.toml").exists()
        assert (home_env / ".zshrc").exists()

    def test_second_run_reuses_backup(self, home_env: Path, backup_dir: Path) -> None:
        """Running create again reports the existing backup."""
        runner.invoke(app, ["backup", "create"])

        result = runner.invoke(app, ["backup", "create"])

        assert result.exit_code == 0
        assert "already backed up" in result.output

    def test_relocate(self, home_env: Path, backup_dir: Path) -> None:
        """--relocate removes the originals after backing them up."""
        result = runner.invoke(app, ["backup", "create", "--relocate"])

        assert result.exit_code == 0, result.output
        assert "Relocation Summary" in result.output
        assert not (home_env / ".zshrc").exists()
        assert (backup_dir / ".zshrc").exists()

    def test_explicit_home(self, home_dir: Path, tmp_path: Path) -> None:
        """--home selects the directory to back up."""
        other = tmp_path / "other-home"
        other.mkdir()
        (other / ".zshrc").write_text("# other\n")

        result = runner.invoke(app, ["backup", "create", "--home", str(other)], env={"ZSHPROF_HOME": ""})

        assert result.exit_code == 0, result.output
        assert (other / ".zsh-profiles" / "backups" / "pre-zshprof" / ".zshrc").exists()

    def test_damaged_backup_fails(self, home_env: Path, backup_dir: Path) -> None:
        """A damaged existing backup exits with an error."""
        backup_dir.mkdir(parents=True)
        (backup_dir / "backup-manifest.toml").write_text("broken = [")

        result = runner.invoke(app, ["backup", "create", "--relocate"])

        assert result.exit_code == 1
        assert "damaged" in result.output
        assert (home_env / ".zshrc").exists()


class TestBackupShow:
    """Tests for zshprof backup show."""

    def test_shows_backup(self, home_env: Path, backup_dir: Path) -> None:
        """Show renders metadata and the file table."""
        runner.invoke(app, ["backup", "create"])

        result = runner.invoke(app, ["backup", "show"])

        assert result.exit_code == 0, result.output
        assert "Created" in result.output
        assert "Backed up files" in result.output

    def test_no_backup(self, home_env: Path, profiles_dir: Path) -> None:
        """Show fails when there is no backup."""
        result = runner.invoke(app, ["backup", "show"])

        assert result.exit_code == 1
        assert "No backup found" in result.output


class TestBackupVerify:
    """Tests for zshprof backup verify."""

    def test_intact(self, home_env: Path, backup_dir: Path) -> None:
        """An intact backup verifies."""
        runner.invoke(app, ["backup", "create"])

        result = runner.invoke(app, ["backup", "verify"])

        assert result.exit_code == 0
        assert "All 3 backed up files verified" in result.output

    def test_corrupted(self, home_env: Path, backup_dir: Path) -> None:
        """A modified copy fails verification."""
        runner.invoke(app, ["backup", "create"])
        (backup_dir / ".zprofile").write_text("bit rot")

        result = runner.invoke(app, ["backup", "verify"])

        assert result.exit_code == 1
        assert "Checksum mismatch" in result.output


class TestExplicitHome:
    """--home is honored by every backup command."""

    def _other_home(self, tmp_path: Path) -> Path:
        other = tmp_path / "other-home"
        other.mkdir()
        (other / ".zshrc").write_text("# other\n")
        runner.invoke(app, ["backup", "create", "--home", str(other)], env={"ZSHPROF_HOME": ""})
        return other

    def test_show(self, home_env: Path, tmp_path: Path) -> None:
        """Show finds a backup created with --home."""
        other = self._other_home(tmp_path)

        result = runner.invoke(app, ["backup", "show", "--home", str(other)], env={"ZSHPROF_HOME": ""})

        assert result.exit_code == 0, result.output
        assert "Backed up files" in result.output

    def test_verify(self, home_env: Path, tmp_path: Path) -> None:
        """Verify checks a backup created with --home."""
        other = self._other_home(tmp_path)
        (other / ".zsh-profiles" / "backups" / "pre-zshprof" / ".zshrc").write_text("bit rot")

        result = runner.invoke(app, ["backup", "verify", "--home", str(other)], env={"ZSHPROF_HOME": ""})

        assert result.exit_code == 1
        assert "Checksum mismatch" in result.output

    def test_default_home_is_not_used(self, home_env: Path, tmp_path: Path) -> None:
        """Without --home, the other backup is not found."""
        self._other_home(tmp_path)

        result = runner.invoke(app, ["backup", "show"], env={"ZSHPROF_HOME": ""})

        assert result.exit_code == 1
        assert "No backup found" in result.output
