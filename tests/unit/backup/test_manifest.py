"""Unit tests for the backup manifest model.

Tests for checksums, TOML serialization and manifest persistence.
"""

import hashlib
import os
import stat
import tomllib
from datetime import UTC, datetime
from pathlib import Path

import pytest
import tomli_w
from zshprof.backup.manifest import (
    BackedUpFile,
    BackupManifest,
    BackupMetadata,
    CorruptManifestError,
    DetectedFramework,
    FilePermissions,
    ManifestNotFoundError,
    ManifestWriteError,
    compute_checksum,
    deserialize_manifest,
    find_missing_snapshots,
    load_backup_manifest,
    save_backup_manifest,
    serialize_manifest,
    verify_checksum,
)

CHECKSUM = "a" * 64


def _metadata() -> BackupMetadata:
    return BackupMetadata(
        format_version="1",
        created_at=datetime(2025, 1, 15, 10, 30, tzinfo=UTC),
        shell_version="zsh 5.9 (x86_64-pc-linux-gnu)",
        os="Linux",
        tool_version="0.4.0",
    )


def _entry(name: str = ".zshrc", **overrides: object) -> BackedUpFile:
    fields: dict[str, object] = {
        "path": f"/home/user/{name}",
        "snapshot": name,
        "size": 400,
        "checksum": CHECKSUM,
        "permissions": FilePermissions(mode=0o644, uid=1000, gid=1000),
        "is_symlink": False,
    }
    fields.update(overrides)
    return BackedUpFile(**fields)  # type: ignore[arg-type]


@pytest.fixture
def sample_manifest() -> BackupManifest:
    """Manifest with a regular file, a symlink and a framework."""
    return BackupManifest(
        metadata=_metadata(),
        detected_framework=DetectedFramework(
            name="oh-my-zsh",
            path="/home/user/.oh-my-zsh",
            config_files=["/home/user/.zshrc"],
        ),
        files=[
            _entry(),
            _entry(
                ".zsh_history",
                size=19,
                checksum=hashlib.sha256(b"/mnt/shared/history").hexdigest(),
                is_symlink=True,
                symlink_target="/mnt/shared/history",
            ),
        ],
    )


class TestChecksum:
    """Tests for compute_checksum and verify_checksum."""

    def test_regular_file(self, tmp_path: Path) -> None:
        """Checksum of a regular file is the SHA-256 of its bytes."""
        path = tmp_path / "file"
        path.write_bytes(b"hello\n")
        assert compute_checksum(path) == hashlib.sha256(b"hello\n").hexdigest()

    def test_large_file_is_streamed(self, tmp_path: Path) -> None:
        """Files larger than one chunk hash to the same digest."""
        data = os.urandom(200 * 1024)
        path = tmp_path / "big"
        path.write_bytes(data)
        assert compute_checksum(path) == hashlib.sha256(data).hexdigest()

    def test_symlink_hashes_target_string(self, tmp_path: Path) -> None:
        """A symlink is hashed by its target path, not the target content."""
        target = tmp_path / "target"
        target.write_text("content")
        link = tmp_path / "link"
        link.symlink_to(target)

        assert compute_checksum(link) == hashlib.sha256(os.fsencode(str(target))).hexdigest()
        assert compute_checksum(link) != compute_checksum(target)

    def test_dangling_symlink(self, tmp_path: Path) -> None:
        """Dangling symlinks can still be hashed."""
        link = tmp_path / "link"
        link.symlink_to("/nonexistent/history")
        assert compute_checksum(link) == hashlib.sha256(b"/nonexistent/history").hexdigest()

    def test_verify_matches(self, tmp_path: Path) -> None:
        """verify_checksum accepts the recorded digest."""
        path = tmp_path / "file"
        path.write_text("abc")
        assert verify_checksum(path, compute_checksum(path)) is True

    def test_verify_detects_change(self, tmp_path: Path) -> None:
        """verify_checksum rejects modified content."""
        path = tmp_path / "file"
        path.write_text("abc")
        digest = compute_checksum(path)
        path.write_text("abd")
        assert verify_checksum(path, digest) is False

    def test_verify_missing_file(self, tmp_path: Path) -> None:
        """verify_checksum returns False for a missing file."""
        assert verify_checksum(tmp_path / "missing", CHECKSUM) is False


class TestBackedUpFile:
    """Tests for BackedUpFile validation and capture."""

    def test_relative_path_rejected(self) -> None:
        """Original paths must be absolute."""
        with pytest.raises(ValueError, match="must be absolute"):
            _entry(path=".zshrc")

    def test_snapshot_outside_backup_rejected(self) -> None:
        """Snapshot paths cannot escape the backup directory."""
        with pytest.raises(ValueError, match="inside the backup"):
            _entry(snapshot="../.zshrc")

    def test_invalid_checksum_rejected(self) -> None:
        """Checksums must be 64 lowercase hex characters."""
        with pytest.raises(ValueError):
            _entry(checksum="ABC123")

    def test_symlink_requires_target(self) -> None:
        """Symlink entries need a target."""
        with pytest.raises(ValueError, match="requires symlink_target"):
            _entry(is_symlink=True)

    def test_target_only_for_symlinks(self) -> None:
        """Regular entries cannot carry a symlink target."""
        with pytest.raises(ValueError, match="regular file"):
            _entry(symlink_target="/somewhere")

    def test_capture_regular_file(self, tmp_path: Path) -> None:
        """capture() records size, checksum and permissions."""
        path = tmp_path / ".zshrc"
        path.write_text("export A=1\n")
        path.chmod(0o640)

        entry = BackedUpFile.capture(path, ".zshrc")

        st = path.stat()
        assert entry.path == str(path)
        assert entry.size == len("export A=1\n")
        assert entry.checksum == compute_checksum(path)
        assert entry.permissions.mode == 0o640
        assert entry.permissions.uid == st.st_uid
        assert entry.is_symlink is False
        assert entry.symlink_target is None

    def test_capture_symlink(self, tmp_path: Path) -> None:
        """capture() records a symlink without following it."""
        link = tmp_path / ".zsh_history"
        link.symlink_to("/mnt/shared/history")

        entry = BackedUpFile.capture(link, ".zsh_history")

        assert entry.is_symlink is True
        assert entry.symlink_target == "/mnt/shared/history"
        assert entry.checksum == hashlib.sha256(b"/mnt/shared/history").hexdigest()


class TestBackupManifest:
    """Tests for BackupManifest."""

    def test_duplicate_paths_rejected(self) -> None:
        """The same original cannot be listed twice."""
        with pytest.raises(ValueError, match="more than once"):
            BackupManifest(metadata=_metadata(), files=[_entry(), _entry()])

    def test_get_file(self, sample_manifest: BackupManifest) -> None:
        """get_file() finds entries by original path."""
        entry = sample_manifest.get_file("/home/user/.zshrc")
        assert entry is not None
        assert entry.snapshot == ".zshrc"
        assert sample_manifest.get_file("/home/user/.zlogin") is None

    def test_total_size(self, sample_manifest: BackupManifest) -> None:
        """total_size sums entry sizes."""
        assert sample_manifest.total_size == 419

    def test_newer_format_rejected(self) -> None:
        """A manifest from a newer format version is refused."""
        with pytest.raises(ValueError, match="Unsupported manifest format"):
            BackupMetadata(
                format_version="2",
                created_at=datetime.now(UTC),
                shell_version="unknown",
                os="Linux",
                tool_version="9.0.0",
            )


class TestSerialization:
    """Tests for TOML serialization."""

    def test_serialize_is_readable_toml(self, sample_manifest: BackupManifest) -> None:
        """Serialized manifests are plain TOML a user can read."""
        text = serialize_manifest(sample_manifest).decode("utf-8")

        assert "[metadata]" in text
        assert "[detected_framework]" in text
        assert "[[files]]" in text
        assert 'symlink_target = "/mnt/shared/history"' in text

    def test_roundtrip(self, sample_manifest: BackupManifest) -> None:
        """deserialize(serialize(m)) == m."""
        assert deserialize_manifest(serialize_manifest(sample_manifest)) == sample_manifest

    def test_no_framework_is_omitted(self) -> None:
        """An absent framework is left out rather than written as null."""
        manifest = BackupManifest(metadata=_metadata(), files=[])
        text = serialize_manifest(manifest).decode("utf-8")

        assert "detected_framework" not in text
        assert deserialize_manifest(text.encode()).detected_framework is None

    def test_invalid_toml(self) -> None:
        """Broken TOML raises CorruptManifestError."""
        with pytest.raises(CorruptManifestError, match="Invalid TOML"):
            deserialize_manifest(b"[metadata\nbroken")

    def test_invalid_utf8(self) -> None:
        """Non UTF-8 bytes raise CorruptManifestError."""
        with pytest.raises(CorruptManifestError, match="UTF-8"):
            deserialize_manifest(b"\xff\xfe\x00")

    def test_missing_required_field(self, sample_manifest: BackupManifest) -> None:
        """Missing required fields are not defaulted."""
        text = serialize_manifest(sample_manifest).decode("utf-8")
        lines = [line for line in text.splitlines() if not line.startswith("tool_version")]

        with pytest.raises(CorruptManifestError, match="tool_version"):
            deserialize_manifest("\n".join(lines).encode())

    def test_framework_without_config_files(self, sample_manifest: BackupManifest) -> None:
        """A framework block missing config_files is corrupt, not empty."""
        data = tomllib.loads(serialize_manifest(sample_manifest).decode("utf-8"))
        del data["detected_framework"]["config_files"]

        with pytest.raises(CorruptManifestError, match="config_files"):
            deserialize_manifest(tomli_w.dumps(data).encode())

    def test_missing_checksum(self, sample_manifest: BackupManifest) -> None:
        """A file entry without checksum is corrupt."""
        text = serialize_manifest(sample_manifest).decode("utf-8")
        lines = [line for line in text.splitlines() if not line.startswith("checksum")]

        with pytest.raises(CorruptManifestError):
            deserialize_manifest("\n".join(lines).encode())

    def test_unknown_field_rejected(self, sample_manifest: BackupManifest) -> None:
        """Unknown keys are rejected."""
        data = serialize_manifest(sample_manifest) + b'\nextra = "value"\n'
        with pytest.raises(CorruptManifestError):
            deserialize_manifest(data)


class TestPersistence:
    """Tests for save_backup_manifest and load_backup_manifest."""

    def test_save_and_load(self, tmp_path: Path, sample_manifest: BackupManifest) -> None:
        """A saved manifest loads back unchanged."""
        path = tmp_path / "backup-manifest.toml"

        assert save_backup_manifest(sample_manifest, path) == path
        assert load_backup_manifest(path) == sample_manifest

    def test_saved_owner_only(self, tmp_path: Path, sample_manifest: BackupManifest) -> None:
        """The manifest file is readable by its owner only."""
        path = tmp_path / "backup-manifest.toml"
        save_backup_manifest(sample_manifest, path)

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_no_temp_files_left(self, tmp_path: Path, sample_manifest: BackupManifest) -> None:
        """Atomic write leaves only the manifest behind."""
        save_backup_manifest(sample_manifest, tmp_path / "backup-manifest.toml")
        assert [p.name for p in tmp_path.iterdir()] == ["backup-manifest.toml"]

    def test_save_to_missing_dir(self, tmp_path: Path, sample_manifest: BackupManifest) -> None:
        """Writing into a missing directory raises ManifestWriteError."""
        with pytest.raises(ManifestWriteError):
            save_backup_manifest(sample_manifest, tmp_path / "missing" / "backup-manifest.toml")

    def test_load_missing(self, tmp_path: Path) -> None:
        """Loading a missing manifest raises ManifestNotFoundError."""
        with pytest.raises(ManifestNotFoundError):
            load_backup_manifest(tmp_path / "backup-manifest.toml")

    def test_load_corrupt(self, tmp_path: Path) -> None:
        """Loading garbage raises CorruptManifestError."""
        path = tmp_path / "backup-manifest.toml"
        path.write_text("not = [valid")
        with pytest.raises(CorruptManifestError):
            load_backup_manifest(path)


class TestFindMissingSnapshots:
    """Tests for find_missing_snapshots."""

    def test_all_present(self, tmp_path: Path, sample_manifest: BackupManifest) -> None:
        """No entries are reported when every copy exists."""
        (tmp_path / ".zshrc").write_text("x")
        (tmp_path / ".zsh_history").symlink_to("/mnt/shared/history")

        assert find_missing_snapshots(sample_manifest, tmp_path) == []

    def test_missing_copy(self, tmp_path: Path, sample_manifest: BackupManifest) -> None:
        """Entries without a copy are reported in manifest order."""
        (tmp_path / ".zsh_history").symlink_to("/mnt/shared/history")

        missing = find_missing_snapshots(sample_manifest, tmp_path)

        assert [e.snapshot for e in missing] == [".zshrc"]
