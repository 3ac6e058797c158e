"""Uninstall command.

Validates preconditions, takes a safety snapshot, then either restores the
pre-zshprof shell configuration or promotes one profile to the root
configuration, and finally removes zshprof's own files.
"""

from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from zshprof.backup.manifest import BackedUpFile
from zshprof.backup.promote import list_profiles, plan_promotion
from zshprof.backup.restore import (
    ConflictPolicy,
    ConflictResolver,
    RestoreError,
    RestorePlan,
    RestoreResult,
    ValidationReport,
    execute_plan,
    restore_original,
    validate_preconditions,
)
from zshprof.backup.snapshot import SnapshotError, create_final_snapshot, final_snapshot_path
from zshprof.cleanup.engine import CleanupConfig, CleanupError, CleanupReport, cleanup_all, is_generated_zshenv
from zshprof.core.paths import get_home_dir, get_pre_existing_backup_dir, get_profiles_dir, get_zshenv_path
from zshprof.utils.formatting import (
    console,
    format_size,
    print_error,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Remove zshprof and optionally restore your original shell configuration.",
    invoke_without_command=True,
)


class RestoreChoice(str, Enum):
    """What to leave behind in the home directory."""

    ORIGINAL = "original"
    PROMOTE = "promote"
    CLEAN = "clean"


class ConflictChoice(str, Enum):
    """CLI names of the conflict policies."""

    OVERWRITE = "overwrite"
    BACKUP = "backup"
    SKIP = "skip"

    def to_policy(self) -> ConflictPolicy:
        return {
            ConflictChoice.OVERWRITE: ConflictPolicy.OVERWRITE,
            ConflictChoice.BACKUP: ConflictPolicy.BACKUP_EXISTING,
            ConflictChoice.SKIP: ConflictPolicy.SKIP,
        }[self]


def _make_resolver(policy: ConflictPolicy, home_dir: Path, profiles_dir: Path) -> ConflictResolver:
    """Resolve conflicts with the chosen policy.

    The environment file zshprof generated is always overwritten: it is
    removed by cleanup anyway and must not survive under another name.
    """
    generated_zshenv = get_zshenv_path(home_dir)

    def resolve(entry: BackedUpFile, destination: Path) -> ConflictPolicy:
        if destination == generated_zshenv and not destination.is_symlink():
            try:
                content = destination.read_text(encoding="utf-8", errors="replace")
            except OSError:
                return policy
            if is_generated_zshenv(content, profiles_dir):
                return ConflictPolicy.OVERWRITE
        return policy

    return resolve


def _report_validation(report: ValidationReport, *, restore: bool) -> None:
    """Print validation findings and exit on blocking ones."""
    for issue in report.warnings:
        print_warning(issue.message)

    blocking = report.blocking_for(restore_original=restore)
    if not blocking:
        return

    print_error("Cannot uninstall:")
    for issue in blocking:
        console.print(f"  - {issue.message}")
    if restore and report.is_valid:
        print_info("Use --restore clean to uninstall without restoring the original configuration.")
    raise typer.Exit(code=1)


def _plan_promotion(
    profiles_dir: Path,
    profile: str | None,
    home_dir: Path,
    resolver: ConflictResolver,
) -> RestorePlan:
    """Plan the promotion or exit with a readable error."""
    if not profile:
        available = ", ".join(list_profiles(profiles_dir)) or "none"
        print_error("--restore promote needs --profile NAME")
        print_info(f"Available profiles: {available}")
        raise typer.Exit(code=1)
    try:
        return plan_promotion(profiles_dir, profile, home_dir, resolver)
    except RestoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def _show_preview(
    report: ValidationReport,
    restore: bool,
    profiles_dir: Path,
    keep_backups: bool,
    snapshot: bool,
    promotion: RestorePlan | None = None,
) -> None:
    console.print()
    console.print("[bold]Uninstall Summary[/bold]")
    if promotion is not None:
        console.print(
            f"  Promote: [info]{len(promotion.actions)} files[/info] from profile "
            f"[info]{promotion.backup_dir.name}[/info]"
        )
        for action in promotion.actions:
            console.print(f"    [muted]{action.destination}[/muted] ({action.kind.value})")
        if not promotion.actions:
            console.print("    [warning]The profile has no shell configuration files.[/warning]")
    elif restore and report.manifest is not None:
        console.print(f"  Restore: [info]{len(report.manifest.files)} files[/info] from the original backup")
        for entry in report.manifest.files:
            console.print(f"    [muted]{entry.path}[/muted]")
    else:
        console.print("  Restore: [muted]none (clean removal)[/muted]")
        if report.manifest is not None and report.manifest.files and not keep_backups:
            console.print("  [warning]The backup of your original configuration will be deleted.[/warning]")
    console.print(f"  Remove: [removed]{profiles_dir}[/removed]")
    if keep_backups:
        console.print("  Keep: [restored]backups/[/restored]")
    if not snapshot:
        console.print("  Safety snapshot: [warning]skipped[/warning]")
    console.print()


def _take_snapshot(home_dir: Path, profiles_dir: Path, keep_backups: bool) -> Path:
    """Write the final safety snapshot where it survives cleanup."""
    directory = None if keep_backups else home_dir
    output = final_snapshot_path(profiles_dir, directory=directory)
    try:
        with console.status("Creating safety snapshot..."):
            size = create_final_snapshot(profiles_dir, output)
    except SnapshotError as e:
        print_error(str(e))
        print_info("Nothing was changed. Use --no-backup to uninstall without a snapshot.")
        raise typer.Exit(code=1) from e
    print_success(f"Safety snapshot created: {output} ({format_size(size)})")
    return output


def _report_restore(result: RestoreResult, what: str = "the original configuration") -> None:
    """Print the restore outcome; exit unless it committed."""
    if result.committed:
        for original, aside in result.moved_aside:
            print_info(f"Kept your current {original.name} as {aside}")
        for path in result.skipped:
            console.print(f"  [skipped]unchanged[/skipped] {path}")
        print_success(f"Restored {len(result.restored)} files from {what}")
        return

    print_error(f"Restoring {what} failed.")
    console.print(result.recovery_hint(), markup=False, highlight=False)
    print_info("zshprof was not removed.")
    raise typer.Exit(code=1)


def _report_cleanup(report: CleanupReport) -> None:
    for path in report.preserved:
        console.print(f"  [skipped]kept[/skipped] {path}")
    for issue in report.errors:
        print_warning(f"{issue.path}: {issue.error}")
    if report.is_successful:
        print_success(f"Removed {report.total_removed} zshprof items")
    else:
        print_warning("Some files could not be removed; remove them manually.")


@app.callback(invoke_without_command=True)
def uninstall(
    ctx: typer.Context,
    restore: Annotated[
        RestoreChoice,
        typer.Option(
            "--restore",
            "-r",
            help="Restore the original configuration, promote a profile, or remove zshprof only.",
        ),
    ] = RestoreChoice.ORIGINAL,
    profile: Annotated[
        str | None,
        typer.Option(
            "--profile",
            "-p",
            help="Profile to promote with --restore promote.",
        ),
    ] = None,
    on_conflict: Annotated[
        ConflictChoice,
        typer.Option(
            "--on-conflict",
            help="What to do with files that exist where files are restored.",
        ),
    ] = ConflictChoice.BACKUP,
    keep_backups: Annotated[
        bool,
        typer.Option(
            "--keep-backups",
            help="Keep the backups/ directory.",
        ),
    ] = False,
    no_backup: Annotated[
        bool,
        typer.Option(
            "--no-backup",
            help="Skip the final safety snapshot.",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip confirmation prompt.",
        ),
    ] = False,
) -> None:
    """Uninstall zshprof.

    Examples:
        zshprof uninstall                           # Restore original config
        zshprof uninstall --restore clean           # Just remove zshprof
        zshprof uninstall -r promote -p work        # Keep profile "work" as root config
        zshprof uninstall --on-conflict overwrite   # Replace files in the way
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        home_dir = get_home_dir()
    except RuntimeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    profiles_dir = get_profiles_dir(home_dir)
    backup_dir = get_pre_existing_backup_dir(profiles_dir)
    restoring = restore == RestoreChoice.ORIGINAL
    if profile and restore != RestoreChoice.PROMOTE:
        print_warning("--profile is only used with --restore promote")

    with console.status("Checking preconditions..."):
        report = validate_preconditions(home_dir, profiles_dir, backup_dir)
    _report_validation(report, restore=restoring)

    resolver = _make_resolver(on_conflict.to_policy(), home_dir, profiles_dir)
    promotion = None
    if restore == RestoreChoice.PROMOTE:
        promotion = _plan_promotion(profiles_dir, profile, home_dir, resolver)

    _show_preview(report, restoring, profiles_dir, keep_backups, not no_backup, promotion)
    if not yes and not typer.confirm("Proceed with uninstall?"):
        print_info("Cancelled. No changes were made.")
        return

    if not no_backup:
        _take_snapshot(home_dir, profiles_dir, keep_backups)

    if restoring:
        try:
            result = restore_original(home_dir, backup_dir, resolver)
        except RestoreError as e:
            print_error(str(e))
            print_info(f"Nothing was restored. Your backup is still at {backup_dir}.")
            raise typer.Exit(code=1) from e
        _report_restore(result)
    elif promotion is not None:
        with console.status(f"Promoting profile '{profile}'..."):
            result = execute_plan(promotion)
        _report_restore(result, f"profile '{profile}'")

    config = CleanupConfig(profiles_dir=profiles_dir, home_dir=home_dir, keep_backups=keep_backups)
    try:
        with console.status("Removing zshprof files...") as status:
            cleanup_report = cleanup_all(config, progress=status.update)
    except CleanupError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    _report_cleanup(cleanup_report)

    print_success("zshprof has been uninstalled.")
    if restoring:
        print_info("Open a new terminal to use your original shell configuration.")
    elif promotion is not None:
        print_info(f"Open a new terminal to use profile '{profile}' as your shell configuration.")
