"""Restoration of the pre-existing shell configuration.

A restore attempt moves through Validating -> Planning -> Executing and
ends Committed, RolledBack, or RollbackIncomplete:

- validate_preconditions() builds a ValidationReport; blocking issues
  stop the attempt before any file is touched.
- plan_restore() decides a concrete action for every manifest entry,
  consulting a ConflictResolver for destinations that already exist.
- execute_plan() performs the actions in manifest order, journaling the
  inverse of each one, and rolls everything back on the first failure.
"""

import logging
import os
import platform
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile

from zshprof.backup.creator import backup_exists, validate_backup
from zshprof.backup.journal import RemoveCreated, RestoreMoved, RestoreOverwritten, RollbackJournal
from zshprof.backup.manifest import BackedUpFile, BackupManifest, ManifestError, verify_checksum
from zshprof.core.paths import ensure_private_dir, get_home_dir, is_installed
from zshprof.utils.shell import run_command

logger = logging.getLogger(__name__)

# Suffix for live files moved aside by ConflictPolicy.BACKUP_EXISTING
CONFLICT_SUFFIX = ".zshprofbackup"


class RestoreError(Exception):
    """Raised when a restore cannot be planned or started."""


class Severity(str, Enum):
    """Severity of a validation issue.

    Attributes:
        BLOCKING: The operation must not proceed.
        WARNING: Shown to the user, never blocks.
    """

    BLOCKING = "blocking"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A single finding of precondition validation.

    Attributes:
        severity: Whether the issue blocks.
        message: Human-readable description, shown verbatim.
        related_path: Path the issue concerns, if any.
        restore_only: Blocks restoring the original configuration but
            not other uninstall paths such as clean removal.
    """

    severity: Severity
    message: str
    related_path: str | None = None
    restore_only: bool = False


@dataclass(slots=True)
class ValidationReport:
    """Ordered findings of one validation pass.

    Attributes:
        issues: Issues in the order they were found.
        manifest: Backup manifest, when it could be loaded and verified.
    """

    issues: list[ValidationIssue] = field(default_factory=list)
    manifest: BackupManifest | None = None

    def add(
        self,
        severity: Severity,
        message: str,
        related_path: Path | str | None = None,
        *,
        restore_only: bool = False,
    ) -> None:
        """Append an issue."""
        self.issues.append(
            ValidationIssue(
                severity=severity,
                message=message,
                related_path=str(related_path) if related_path is not None else None,
                restore_only=restore_only,
            )
        )

    @property
    def blocking(self) -> list[ValidationIssue]:
        """All blocking issues."""
        return [i for i in self.issues if i.severity == Severity.BLOCKING]

    @property
    def warnings(self) -> list[ValidationIssue]:
        """All advisory issues."""
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def blocking_for(self, *, restore_original: bool) -> list[ValidationIssue]:
        """Blocking issues relevant to the chosen uninstall path.

        Args:
            restore_original: Whether the original configuration will be restored.

        Returns:
            Issues that must stop this path.
        """
        return [i for i in self.blocking if restore_original or not i.restore_only]

    @property
    def is_valid(self) -> bool:
        """True when no issue blocks every uninstall path."""
        return not self.blocking_for(restore_original=False)

    @property
    def backup_available(self) -> bool:
        """True when a verified backup manifest was loaded."""
        return self.manifest is not None

    @property
    def can_restore_original(self) -> bool:
        """True when restoring the original configuration is possible."""
        return not self.blocking_for(restore_original=True)


class ConflictPolicy(str, Enum):
    """How to treat a restore destination that already has content.

    Attributes:
        OVERWRITE: Replace the live file.
        BACKUP_EXISTING: Move the live file aside, then restore.
        SKIP: Leave the live file untouched and skip the entry.
    """

    OVERWRITE = "overwrite"
    BACKUP_EXISTING = "backup_existing"
    SKIP = "skip"


ConflictResolver = Callable[[BackedUpFile, Path], ConflictPolicy]


def policy_resolver(policy: ConflictPolicy) -> ConflictResolver:
    """Resolve every conflict of a run with the same policy.

    Args:
        policy: Policy applied to each conflicting entry.

    Returns:
        A ConflictResolver.
    """

    def resolve(entry: BackedUpFile, destination: Path) -> ConflictPolicy:
        return policy

    return resolve


class ActionKind(str, Enum):
    """Concrete action planned for one manifest entry.

    Attributes:
        WRITE: Destination is free; restore into it.
        OVERWRITE: Replace the existing destination.
        MOVE_ASIDE: Move the existing destination aside, then restore.
        SKIP: Leave the existing destination untouched.
        UNCHANGED: Destination already matches the backup.
    """

    WRITE = "write"
    OVERWRITE = "overwrite"
    MOVE_ASIDE = "move_aside"
    SKIP = "skip"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class PlannedAction:
    """One step of a restore plan.

    Attributes:
        entry: Manifest entry being restored.
        source: Snapshot copy in the backup directory.
        destination: Path in the home directory.
        kind: What will be done.
    """

    entry: BackedUpFile
    source: Path
    destination: Path
    kind: ActionKind


@dataclass(frozen=True, slots=True)
class RestorePlan:
    """Fully computed restore plan, built before anything is mutated.

    Attributes:
        actions: Planned steps in manifest order.
        home_dir: Home directory being restored into.
        backup_dir: Directory holding the source files; rollback scratch
            space is created inside it.
    """

    actions: tuple[PlannedAction, ...]
    home_dir: Path
    backup_dir: Path

    def with_kind(self, kind: ActionKind) -> list[PlannedAction]:
        """Planned steps of one kind."""
        return [a for a in self.actions if a.kind == kind]

    @property
    def conflicts(self) -> list[PlannedAction]:
        """Steps whose destination already had different content."""
        return [
            a
            for a in self.actions
            if a.kind in (ActionKind.OVERWRITE, ActionKind.MOVE_ASIDE, ActionKind.SKIP)
        ]


class RestoreState(str, Enum):
    """State of a restore attempt.

    Attributes:
        VALIDATING: Checking preconditions.
        PLANNING: Deciding an action per entry.
        EXECUTING: Mutating the home directory.
        COMMITTED: Every action succeeded.
        ROLLED_BACK: An action failed and every completed action was undone.
        ROLLBACK_INCOMPLETE: An action failed and some completed actions
            could not be undone.
    """

    VALIDATING = "validating"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_INCOMPLETE = "rollback_incomplete"


@dataclass(slots=True)
class RestoreResult:
    """Outcome of executing a restore plan.

    Attributes:
        state: Terminal state of the attempt.
        plan: The plan that was executed.
        restored: Destinations written by the restore.
        moved_aside: (original, aside) pairs for move-aside conflicts.
        skipped: Destinations left untouched.
        failed_path: Destination whose action failed.
        error: Why it failed.
        rollback_errors: Inverse actions that could not be applied.
        scratch_dir: Directory with saved prior content, kept when the
            rollback was incomplete.
    """

    state: RestoreState
    plan: RestorePlan
    restored: list[Path] = field(default_factory=list)
    moved_aside: list[tuple[Path, Path]] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    failed_path: Path | None = None
    error: str | None = None
    rollback_errors: list[str] = field(default_factory=list)
    scratch_dir: Path | None = None

    @property
    def committed(self) -> bool:
        """True when the restore completed."""
        return self.state == RestoreState.COMMITTED

    def recovery_hint(self) -> str:
        """Describe what was not completed and where the data still lives."""
        backup_dir = self.plan.backup_dir
        if self.state == RestoreState.COMMITTED:
            return f"Original configuration restored from {backup_dir}."

        lines = [f"Restoring {self.failed_path} failed: {self.error}"]
        if self.state == RestoreState.ROLLED_BACK:
            lines.append("All changes were rolled back; your home directory is unchanged.")
        else:
            lines.append("Automatic rollback was incomplete:")
            lines.extend(f"  - {e}" for e in self.rollback_errors)
            if self.scratch_dir is not None:
                lines.append(f"Prior content of overwritten files is kept in {self.scratch_dir}")
            lines.append(f"Files moved aside end in '{CONFLICT_SUFFIX}'.")
        lines.append(f"The source files are intact in {backup_dir}; they can be copied back by hand.")
        return "\n".join(lines)


# =============================================================================
# Validating
# =============================================================================


def detect_active_shells() -> list[str]:
    """List running zsh processes (best effort).

    Returns:
        Descriptions such as "PID 4242 (zsh -l)"; empty if none were found
        or the platform is unsupported.
    """
    system = platform.system()
    if system == "Linux":
        args = ["pgrep", "-a", "zsh"]
    elif system == "Darwin":
        args = ["pgrep", "-fl", "zsh"]
    else:
        return []

    try:
        result = run_command(args)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Active shell detection unavailable: %s", e)
        return []
    if not result.success:
        return []

    shells: list[str] = []
    for line in result.stdout.splitlines():
        line = line.strip()
        if not line:
            continue
        pid, _, command = line.partition(" ")
        if pid == str(os.getpid()):
            continue
        shells.append(f"PID {pid} ({command.strip()})" if command else line)
    return shells


def _check_home(report: ValidationReport, home_dir: Path | None) -> Path | None:
    """Check that HOME is an existing, writable directory."""
    if home_dir is None:
        try:
            home_dir = get_home_dir()
        except RuntimeError as e:
            report.add(Severity.BLOCKING, str(e))
            return None

    if not home_dir.is_dir():
        report.add(
            Severity.BLOCKING,
            f"Home directory does not exist or is not a directory: {home_dir}",
            home_dir,
        )
        return None
    if not os.access(home_dir, os.W_OK):
        report.add(Severity.BLOCKING, f"No write permission to home directory {home_dir}", home_dir)
    return home_dir


def _check_backup(report: ValidationReport, backup_dir: Path, *, verify: bool) -> None:
    """Check that the backup exists, parses and matches its checksums."""
    if not backup_exists(backup_dir):
        report.add(
            Severity.BLOCKING,
            f"No pre-existing configuration backup found at {backup_dir}. "
            "Restoring the original configuration is not available.",
            backup_dir,
            restore_only=True,
        )
        return

    try:
        manifest = validate_backup(backup_dir)
    except ManifestError as e:
        report.add(Severity.BLOCKING, f"Backup manifest is corrupted: {e}", backup_dir, restore_only=True)
        return

    if verify:
        corrupted = [
            entry
            for entry in manifest.files
            if not verify_checksum(backup_dir / entry.snapshot, entry.checksum)
        ]
        for entry in corrupted:
            report.add(
                Severity.BLOCKING,
                f"Backup copy of {entry.path} does not match its recorded checksum",
                backup_dir / entry.snapshot,
                restore_only=True,
            )
        if corrupted:
            return

    report.manifest = manifest


def validate_preconditions(
    home_dir: Path | None,
    profiles_dir: Path,
    backup_dir: Path,
    *,
    verify_checksums: bool = True,
    check_shells: bool = True,
) -> ValidationReport:
    """Check everything a restore or uninstall depends on.

    Args:
        home_dir: Home directory, or None to resolve it from HOME.
        profiles_dir: zshprof data directory.
        backup_dir: Pre-existing config backup directory.
        verify_checksums: Recompute snapshot checksums.
        check_shells: Look for running zsh sessions.

    Returns:
        ValidationReport; never raises for a failed check.
    """
    report = ValidationReport()

    if _check_home(report, home_dir) is None:
        return report

    if not is_installed(profiles_dir):
        report.add(Severity.BLOCKING, f"zshprof is not installed (no {profiles_dir}/config.toml)", profiles_dir)
        return report

    _check_backup(report, backup_dir, verify=verify_checksums)

    if check_shells:
        active = detect_active_shells()
        if active:
            report.add(
                Severity.WARNING,
                "Active shell sessions detected: "
                + ", ".join(active)
                + ". Close them after uninstalling so they pick up the restored configuration.",
            )

    return report


# =============================================================================
# Planning
# =============================================================================


def _lexists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def _matches_backup(entry: BackedUpFile, destination: Path) -> bool:
    """Check if the destination already holds exactly the backed up file."""
    if entry.is_symlink != destination.is_symlink():
        return False
    return verify_checksum(destination, entry.checksum)


def plan_restore(
    manifest: BackupManifest,
    home_dir: Path,
    backup_dir: Path,
    resolver: ConflictResolver,
) -> RestorePlan:
    """Decide the concrete action for every manifest entry.

    The resolver is consulted once for each destination that exists with
    different content. Nothing on disk is modified.

    Args:
        manifest: Manifest of the backup to restore.
        home_dir: Home directory to restore into.
        backup_dir: Directory holding the snapshot copies.
        resolver: Conflict decision per entry.

    Returns:
        The complete RestorePlan.

    Raises:
        RestoreError: If a snapshot copy is missing.
    """
    actions: list[PlannedAction] = []
    for entry in manifest.files:
        source = backup_dir / entry.snapshot
        destination = home_dir / entry.snapshot

        if not _lexists(source):
            msg = f"Backup copy {source} of {entry.path} is missing; the backup is incomplete"
            raise RestoreError(msg)

        actions.append(plan_action(entry, source, destination, resolver))

    return RestorePlan(actions=tuple(actions), home_dir=home_dir, backup_dir=backup_dir)


def plan_action(
    entry: BackedUpFile,
    source: Path,
    destination: Path,
    resolver: ConflictResolver,
) -> PlannedAction:
    """Decide how one file is written to its destination.

    The resolver is only consulted when the destination exists with
    different content.
    """
    if not _lexists(destination):
        kind = ActionKind.WRITE
    elif _matches_backup(entry, destination):
        kind = ActionKind.UNCHANGED
    else:
        policy = resolver(entry, destination)
        match policy:
            case ConflictPolicy.OVERWRITE:
                kind = ActionKind.OVERWRITE
            case ConflictPolicy.BACKUP_EXISTING:
                kind = ActionKind.MOVE_ASIDE
            case ConflictPolicy.SKIP:
                kind = ActionKind.SKIP
        logger.debug("Conflict at %s resolved as %s", destination, policy.value)

    return PlannedAction(entry=entry, source=source, destination=destination, kind=kind)


# =============================================================================
# Executing
# =============================================================================


def _aside_path(destination: Path) -> Path:
    """Find a free name for moving a live file aside."""
    candidate = destination.with_name(destination.name + CONFLICT_SUFFIX)
    counter = 1
    while _lexists(candidate):
        candidate = destination.with_name(f"{destination.name}{CONFLICT_SUFFIX}.{counter}")
        counter += 1
    return candidate


def _apply_permissions(entry: BackedUpFile, destination: Path) -> None:
    """Restore mode bits and, where allowed, ownership."""
    os.chmod(destination, entry.permissions.mode)
    try:
        os.chown(destination, entry.permissions.uid, entry.permissions.gid)
    except PermissionError:
        # Only root may give files away; mode bits are what matter here
        logger.debug("Cannot restore ownership of %s", destination)


def _write_entry(entry: BackedUpFile, source: Path, destination: Path) -> None:
    """Write one backed up file to its destination and verify it.

    Raises:
        OSError: If the file cannot be written.
        RestoreError: If the written file does not match the manifest.
    """
    if entry.is_symlink:
        if _lexists(destination):
            destination.unlink()
        os.symlink(entry.symlink_target or "", destination)
    else:
        with NamedTemporaryFile(dir=destination.parent, prefix=".zshprof-restore-", delete=False) as tmp:
            tmp_path = Path(tmp.name)
        try:
            with open(source, "rb") as src, open(tmp_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
            _apply_permissions(entry, tmp_path)
            os.replace(tmp_path, destination)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    if not verify_checksum(destination, entry.checksum):
        msg = f"Checksum mismatch for {entry.path}: the source copy at {source} is corrupted"
        raise RestoreError(msg)


def _save_prior_content(destination: Path, scratch_dir: Path, index: int) -> Path:
    """Copy a live file into the scratch directory before overwriting it."""
    saved = scratch_dir / f"{index:03d}-{destination.name}"
    if destination.is_symlink():
        os.symlink(os.readlink(destination), saved)
    elif destination.is_dir():
        msg = f"Cannot overwrite directory {destination} with a file"
        raise IsADirectoryError(msg)
    else:
        shutil.copy2(destination, saved)
    return saved


def _new_scratch_dir(backup_dir: Path) -> Path:
    """Name for this attempt's scratch directory."""
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
    return backup_dir / f".rollback-{stamp}"


def execute_plan(plan: RestorePlan) -> RestoreResult:
    """Execute a restore plan with automatic rollback.

    Actions run in manifest order and the inverse of each completed step
    is journaled. The first failure, including a checksum mismatch after
    writing, stops execution and replays the journal in reverse.

    Args:
        plan: Plan returned by plan_restore().

    Returns:
        RestoreResult in state COMMITTED, ROLLED_BACK or ROLLBACK_INCOMPLETE.
    """
    journal = RollbackJournal()
    result = RestoreResult(state=RestoreState.EXECUTING, plan=plan)
    scratch_dir: Path | None = None

    for index, action in enumerate(plan.actions):
        destination = action.destination
        if action.kind in (ActionKind.SKIP, ActionKind.UNCHANGED):
            result.skipped.append(destination)
            logger.info("Skipped %s (%s)", destination, action.kind.value)
            continue

        try:
            match action.kind:
                case ActionKind.WRITE:
                    # Journaled first: a write that fails verification still leaves a file
                    journal.record(RemoveCreated(destination))
                    _write_entry(action.entry, action.source, destination)
                case ActionKind.OVERWRITE:
                    if scratch_dir is None:
                        scratch_dir = ensure_private_dir(_new_scratch_dir(plan.backup_dir), "rollback scratch")
                    saved = _save_prior_content(destination, scratch_dir, index)
                    journal.record(RestoreOverwritten(destination, saved))
                    _write_entry(action.entry, action.source, destination)
                case ActionKind.MOVE_ASIDE:
                    aside = _aside_path(destination)
                    os.replace(destination, aside)
                    journal.record(RestoreMoved(destination, aside))
                    result.moved_aside.append((destination, aside))
                    _write_entry(action.entry, action.source, destination)
                    journal.record(RemoveCreated(destination))
        except (OSError, RuntimeError, RestoreError) as e:
            logger.error("Restoring %s failed: %s", destination, e)
            result.failed_path = destination
            result.error = str(e)
            result.rollback_errors = journal.rollback()
            if result.rollback_errors:
                result.state = RestoreState.ROLLBACK_INCOMPLETE
                result.scratch_dir = scratch_dir
            else:
                result.state = RestoreState.ROLLED_BACK
                result.moved_aside.clear()
                _discard_scratch(scratch_dir)
            result.restored.clear()
            return result

        result.restored.append(destination)
        logger.info("Restored %s", destination)

    journal.discard()
    _discard_scratch(scratch_dir)
    result.state = RestoreState.COMMITTED
    return result


def _discard_scratch(scratch_dir: Path | None) -> None:
    """Remove the scratch directory once it is no longer needed."""
    if scratch_dir is None or not scratch_dir.exists():
        return
    try:
        shutil.rmtree(scratch_dir)
    except OSError as e:
        logger.warning("Could not remove rollback scratch directory %s: %s", scratch_dir, e)


def restore_original(
    home_dir: Path,
    backup_dir: Path,
    resolver: ConflictResolver | ConflictPolicy = ConflictPolicy.BACKUP_EXISTING,
) -> RestoreResult:
    """Plan and execute a restore of the pre-existing configuration.

    Callers are expected to have run validate_preconditions() first.

    Args:
        home_dir: Home directory to restore into.
        backup_dir: Pre-existing config backup directory.
        resolver: Conflict resolver, or one policy for every conflict.

    Returns:
        RestoreResult of the attempt.

    Raises:
        RestoreError: If the backup cannot be loaded or planned; nothing
            has been modified in that case.
    """
    try:
        manifest = validate_backup(backup_dir)
    except ManifestError as e:
        raise RestoreError(f"Cannot restore from {backup_dir}: {e}") from e

    if isinstance(resolver, ConflictPolicy):
        resolver = policy_resolver(resolver)

    plan = plan_restore(manifest, home_dir, backup_dir, resolver)
    logger.info(
        "Restoring %d files from %s (%d conflicts)",
        len(plan.actions),
        backup_dir,
        len(plan.conflicts),
    )
    return execute_plan(plan)
