"""Backup manifest models and file I/O.

The backup manifest is the single source of truth for what a backup
contains and how to verify it. It is stored as TOML next to the copied
files so that a user can recover them by hand if zshprof is unavailable.

Example backup-manifest.toml::

    [metadata]
    format_version = "1"
    created_at = "2026-10-18T09:12:44.120511Z"
    shell_version = "zsh 5.9 (x86_64-pc-linux-gnu)"
    os = "Linux"
    tool_version = "0.4.0"

    [[files]]
    path = "/home/user/.zshrc"
    snapshot = ".zshrc"
    size = 400
    checksum = "9f86d081884c7d659a2feaa0c55ad015..."
    is_symlink = false

    [files.permissions]
    mode = 420
    uid = 1000
    gid = 1000
"""

import hashlib
import logging
import os
import stat
import tomllib
from datetime import datetime
from pathlib import Path, PurePosixPath
from tempfile import NamedTemporaryFile
from typing import Annotated, Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

# Highest manifest format this version understands
MANIFEST_FORMAT_VERSION = "1"

# Chunk size for streaming checksum computation
_CHUNK_SIZE = 64 * 1024


class ManifestError(Exception):
    """Base exception for backup manifest errors."""


class ManifestNotFoundError(ManifestError):
    """Raised when the manifest file does not exist."""


class CorruptManifestError(ManifestError):
    """Raised when a manifest cannot be parsed or fails validation."""


class ManifestWriteError(ManifestError):
    """Raised when a manifest cannot be written to disk."""


class BackupMetadata(BaseModel):
    """Conditions under which a backup was taken.

    Attributes:
        format_version: Manifest schema version.
        created_at: When the backup was created (UTC).
        shell_version: Output of ``zsh --version`` or "unknown".
        os: Operating system identifier (e.g., "Linux", "Darwin").
        tool_version: zshprof version that wrote the manifest.
    """

    model_config = ConfigDict(extra="forbid")

    format_version: Annotated[str, Field(description="Manifest schema version")]
    created_at: Annotated[datetime, Field(description="Backup creation time")]
    shell_version: Annotated[str, Field(description="Shell version at backup time")]
    os: Annotated[str, Field(description="Operating system identifier")]
    tool_version: Annotated[str, Field(description="zshprof version")]

    @field_validator("format_version")
    @classmethod
    def validate_format_version(cls, v: str) -> str:
        """Reject manifests written by a newer, incompatible format."""
        if not v.isdigit():
            msg = f"format_version must be numeric, got {v!r}"
            raise ValueError(msg)
        if int(v) > int(MANIFEST_FORMAT_VERSION):
            msg = f"Unsupported manifest format {v} (this zshprof reads up to {MANIFEST_FORMAT_VERSION})"
            raise ValueError(msg)
        return v


class DetectedFramework(BaseModel):
    """A zsh framework found in the home directory at backup time.

    Attributes:
        name: Framework name (e.g., "oh-my-zsh").
        path: Framework installation directory.
        config_files: Framework configuration files.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: Annotated[str, Field(min_length=1, description="Framework name")]
    path: Annotated[str, Field(description="Installation directory")]
    config_files: Annotated[list[str], Field(description="Framework configuration files")]


class FilePermissions(BaseModel):
    """Ownership and mode bits of a captured file.

    Attributes:
        mode: Permission bits (``stat.S_IMODE``), e.g. 0o644.
        uid: Owning user id.
        gid: Owning group id.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Annotated[int, Field(ge=0, le=0o7777)]
    uid: Annotated[int, Field(ge=0)]
    gid: Annotated[int, Field(ge=0)]


class BackedUpFile(BaseModel):
    """One file captured by a backup.

    Entries are written once during the backup scan and never mutated.

    Attributes:
        path: Original absolute path in the home directory.
        snapshot: Location of the copy, relative to the backup directory.
        size: Byte length at capture time.
        checksum: SHA-256 hex digest of the content, or of the link
            target string for symlinks.
        permissions: Ownership and mode bits of the original.
        is_symlink: Whether the original was a symbolic link.
        symlink_target: Link target, present only for symlinks.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: Annotated[str, Field(min_length=1, description="Original absolute path")]
    snapshot: Annotated[str, Field(min_length=1, description="Path inside the backup directory")]
    size: Annotated[int, Field(ge=0, description="Size in bytes")]
    checksum: Annotated[str, Field(pattern=r"^[0-9a-f]{64}$", description="SHA-256 hex digest")]
    permissions: Annotated[FilePermissions, Field(description="Ownership and mode bits")]
    is_symlink: Annotated[bool, Field(description="Original was a symlink")]
    symlink_target: Annotated[str | None, Field(description="Symlink target")] = None

    @field_validator("path")
    @classmethod
    def validate_absolute(cls, v: str) -> str:
        """Original paths are always absolute."""
        if not os.path.isabs(v):
            msg = f"path must be absolute, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("snapshot")
    @classmethod
    def validate_snapshot_inside_backup(cls, v: str) -> str:
        """Snapshot locations must stay inside the backup directory."""
        pure = PurePosixPath(v)
        if pure.is_absolute() or ".." in pure.parts:
            msg = f"snapshot must be a relative path inside the backup, got {v!r}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_symlink_target(self) -> "BackedUpFile":
        """A symlink target is present exactly when the entry is a symlink."""
        if self.is_symlink and not self.symlink_target:
            msg = f"{self.path}: symlink entry requires symlink_target"
            raise ValueError(msg)
        if not self.is_symlink and self.symlink_target is not None:
            msg = f"{self.path}: symlink_target set on a regular file"
            raise ValueError(msg)
        return self

    @classmethod
    def capture(cls, source: Path, snapshot: str) -> "BackedUpFile":
        """Build an entry from a live file without following symlinks.

        Args:
            source: Absolute path of the original file.
            snapshot: Location of the copy relative to the backup directory.

        Returns:
            A BackedUpFile describing the file as it is now.

        Raises:
            OSError: If the file cannot be inspected or read.
        """
        st = source.lstat()
        is_symlink = stat.S_ISLNK(st.st_mode)
        target = os.readlink(source) if is_symlink else None

        return cls(
            path=str(source),
            snapshot=snapshot,
            size=st.st_size,
            checksum=compute_checksum(source),
            permissions=FilePermissions(
                mode=stat.S_IMODE(st.st_mode),
                uid=st.st_uid,
                gid=st.st_gid,
            ),
            is_symlink=is_symlink,
            symlink_target=target,
        )

    @property
    def name(self) -> str:
        """Display name of the entry (its snapshot path)."""
        return self.snapshot


class BackupManifest(BaseModel):
    """Root record of one backup operation.

    Attributes:
        metadata: Creation conditions of the backup.
        detected_framework: Framework found at backup time, if any.
        files: Captured files in discovery order.
    """

    model_config = ConfigDict(extra="forbid")

    metadata: Annotated[BackupMetadata, Field(description="Backup metadata")]
    detected_framework: Annotated[
        DetectedFramework | None,
        Field(description="Framework detected at backup time"),
    ] = None
    files: Annotated[list[BackedUpFile], Field(description="Captured files")]

    @model_validator(mode="after")
    def validate_unique_paths(self) -> "BackupManifest":
        """Each original path and snapshot location appears only once."""
        paths = [f.path for f in self.files]
        snapshots = [f.snapshot for f in self.files]
        if len(set(paths)) != len(paths) or len(set(snapshots)) != len(snapshots):
            msg = "Manifest lists the same file more than once"
            raise ValueError(msg)
        return self

    def get_file(self, path: str) -> BackedUpFile | None:
        """Find the entry captured from an original path.

        Args:
            path: Original absolute path.

        Returns:
            The matching entry, or None.
        """
        for entry in self.files:
            if entry.path == path:
                return entry
        return None

    @property
    def total_size(self) -> int:
        """Sum of the captured file sizes in bytes."""
        return sum(f.size for f in self.files)


def compute_checksum(path: Path) -> str:
    """Compute the SHA-256 digest of a file.

    Regular files are streamed in fixed-size chunks. For a symlink the
    digest covers the link target string, never the dereferenced content.

    Args:
        path: File or symlink to hash.

    Returns:
        Lowercase hex digest.

    Raises:
        OSError: If the file cannot be read.
    """
    digest = hashlib.sha256()
    if path.is_symlink():
        digest.update(os.fsencode(os.readlink(path)))
        return digest.hexdigest()

    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(path: Path, expected: str) -> bool:
    """Check a file against a recorded digest.

    Args:
        path: File or symlink to verify.
        expected: Recorded SHA-256 hex digest.

    Returns:
        True if the digests match, False if they differ or the file
        cannot be read.
    """
    try:
        return compute_checksum(path) == expected
    except OSError as e:
        logger.debug("Cannot checksum %s: %s", path, e)
        return False


def serialize_manifest(manifest: BackupManifest) -> bytes:
    """Serialize a manifest to TOML.

    Args:
        manifest: Manifest to serialize.

    Returns:
        UTF-8 encoded TOML document.
    """
    return tomli_w.dumps(_manifest_to_dict(manifest)).encode("utf-8")


def deserialize_manifest(data: bytes) -> BackupManifest:
    """Parse and validate a TOML manifest.

    Missing required fields are an error; nothing is defaulted, since a
    partially parsed manifest could drive an incorrect restore.

    Args:
        data: Raw manifest bytes.

    Returns:
        Validated BackupManifest.

    Raises:
        CorruptManifestError: If the document is not valid TOML or does
            not match the schema.
    """
    try:
        raw = tomllib.loads(data.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise CorruptManifestError(f"Manifest is not valid UTF-8: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise CorruptManifestError(f"Invalid TOML syntax: {e}") from e

    try:
        return BackupManifest.model_validate(raw)
    except ValidationError as e:
        raise CorruptManifestError(f"Invalid manifest content: {e}") from e


def load_backup_manifest(path: Path) -> BackupManifest:
    """Load and validate a manifest file.

    Args:
        path: Path to backup-manifest.toml.

    Returns:
        Validated BackupManifest.

    Raises:
        ManifestNotFoundError: If the file doesn't exist.
        CorruptManifestError: If the content is invalid.
        ManifestError: If the file cannot be read.
    """
    if not path.exists():
        raise ManifestNotFoundError(f"Backup manifest not found: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ManifestError(f"Failed to read backup manifest {path}: {e}") from e

    return deserialize_manifest(data)


def save_backup_manifest(manifest: BackupManifest, path: Path) -> Path:
    """Write a manifest with owner-only permissions.

    The file is written to a temporary file in the same directory and
    moved into place with os.replace(), so a reader never observes a
    partially written manifest.

    Args:
        manifest: Manifest to save.
        path: Destination path.

    Returns:
        Path where the manifest was saved.

    Raises:
        ManifestWriteError: If the file cannot be written.
    """
    data = serialize_manifest(manifest)

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=".manifest-",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            os.chmod(f.name, 0o600)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        path.chmod(0o600)
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ManifestWriteError(f"Failed to write backup manifest {path}: {e}") from e

    return path


def find_missing_snapshots(manifest: BackupManifest, backup_dir: Path) -> list[BackedUpFile]:
    """List manifest entries whose copy is absent from the backup directory.

    A manifest is only valid when this list is empty.

    Args:
        manifest: Manifest to check.
        backup_dir: Directory holding the copied files.

    Returns:
        Entries with no snapshot file, in manifest order.
    """
    missing: list[BackedUpFile] = []
    for entry in manifest.files:
        snapshot = backup_dir / entry.snapshot
        if not snapshot.exists() and not snapshot.is_symlink():
            missing.append(entry)
    return missing


def _manifest_to_dict(manifest: BackupManifest) -> dict[str, Any]:
    """Convert a manifest to a dictionary suitable for TOML serialization.

    TOML has no null, so absent optional values are omitted.

    Args:
        manifest: The manifest to convert.

    Returns:
        Dictionary ready for TOML serialization.
    """
    return manifest.model_dump(mode="json", exclude_none=True)
