"""Backup commands.

Create, inspect and verify the backup of the shell configuration that
existed before zshprof was installed.
"""

from pathlib import Path
from typing import Annotated

import typer

from zshprof.backup.creator import BackupError, backup_exists, take_backup, validate_backup
from zshprof.backup.manifest import BackupManifest, ManifestError, verify_checksum
from zshprof.backup.relocator import RelocationError, RelocationReport, move_configs_to_backup
from zshprof.core.paths import get_home_dir, get_pre_existing_backup_dir, get_profiles_dir
from zshprof.utils.formatting import (
    console,
    create_file_table,
    format_size,
    print_error,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Back up and inspect the pre-existing shell configuration.",
    no_args_is_help=True,
)

HomeOption = Annotated[
    Path | None,
    typer.Option(
        "--home",
        help="Home directory whose backup to use (default: $HOME).",
    ),
]


def _resolve_home(home: Path | None) -> Path:
    try:
        return home or get_home_dir()
    except RuntimeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def _load_backup(backup_dir: Path) -> BackupManifest:
    """Load the backup or exit with a readable error."""
    if not backup_exists(backup_dir):
        print_error(f"No backup found at {backup_dir}")
        raise typer.Exit(code=1)
    try:
        return validate_backup(backup_dir)
    except ManifestError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def _print_relocation_summary(report: RelocationReport) -> None:
    console.print()
    console.print("[bold]Relocation Summary[/bold]")
    for result in report.results:
        style = {
            "removed": "removed",
            "skipped_missing": "skipped",
        }.get(result.status.value, "error")
        console.print(f"  [{style}]{result.status.value:<20}[/] {result.path}")
        if result.error:
            console.print(f"  {'':<20} [muted]{result.error}[/muted]")
    console.print()


@app.command()
def create(
    relocate: Annotated[
        bool,
        typer.Option(
            "--relocate",
            help="Remove the originals from the home directory once backed up.",
        ),
    ] = False,
    home: HomeOption = None,
) -> None:
    """Back up the current shell configuration.

    Safe to run repeatedly: an existing backup is kept as-is.

    Examples:
        zshprof backup create              # Back up ~/.zshrc and friends
        zshprof backup create --relocate   # Back up, then clear them from $HOME
    """
    home_dir = _resolve_home(home)
    backup_dir = get_pre_existing_backup_dir(get_profiles_dir(home_dir))

    try:
        outcome = take_backup(home_dir, backup_dir)
    except BackupError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    for skipped in outcome.skipped:
        print_warning(f"Not backed up: {skipped.path} ({skipped.error})")

    if outcome.created:
        print_success(f"Backed up {len(outcome.manifest.files)} files to {backup_dir}")
    else:
        print_info(f"Shell configuration already backed up at {backup_dir}")

    framework = outcome.manifest.detected_framework
    if framework is not None:
        print_info(f"Detected framework: {framework.name} ({framework.path})")

    if not relocate:
        return

    try:
        report = move_configs_to_backup(home_dir, outcome.manifest, backup_dir)
    except RelocationError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    _print_relocation_summary(report)
    if report.is_successful:
        print_success(f"Moved {len(report.removed)} files out of {home_dir}")
    else:
        print_warning(
            f"{len(report.failed)} files were left in {home_dir}. "
            f"They are also safe in {backup_dir}."
        )


@app.command()
def show(home: HomeOption = None) -> None:
    """Show what the backup contains."""
    backup_dir = get_pre_existing_backup_dir(get_profiles_dir(_resolve_home(home)))
    manifest = _load_backup(backup_dir)
    meta = manifest.metadata

    console.print()
    console.print(f"[bold]Backup[/bold] [muted]{backup_dir}[/muted]")
    console.print(f"  Created: [info]{meta.created_at:%Y-%m-%d %H:%M:%S %Z}[/info]")
    console.print(f"  Shell: [muted]{meta.shell_version}[/muted]  OS: [muted]{meta.os}[/muted]")
    console.print(f"  zshprof: [muted]{meta.tool_version}[/muted]")
    if manifest.detected_framework is not None:
        fw = manifest.detected_framework
        console.print(f"  Framework: [info]{fw.name}[/info] [muted]{fw.path}[/muted]")
    console.print()

    if not manifest.files:
        print_info("The backup is empty: no shell configuration existed.")
        return

    table = create_file_table(f"Backed up files ({format_size(manifest.total_size)})")
    for entry in manifest.files:
        name = entry.path
        if entry.is_symlink:
            name = f"{entry.path} -> {entry.symlink_target}"
        table.add_row(
            name,
            format_size(entry.size),
            f"{entry.permissions.mode:04o}",
            entry.checksum[:12],
        )
    console.print(table)


@app.command()
def verify(home: HomeOption = None) -> None:
    """Recompute checksums of the backed up files."""
    backup_dir = get_pre_existing_backup_dir(get_profiles_dir(_resolve_home(home)))
    manifest = _load_backup(backup_dir)

    corrupted = [
        entry
        for entry in manifest.files
        if not verify_checksum(backup_dir / entry.snapshot, entry.checksum)
    ]
    for entry in corrupted:
        print_error(f"Checksum mismatch: {backup_dir / entry.snapshot} (backup of {entry.path})")

    if corrupted:
        raise typer.Exit(code=1)
    print_success(f"All {len(manifest.files)} backed up files verified")
