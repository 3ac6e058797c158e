"""Pre-existing shell configuration backup and restore.

Modules:
    manifest: Manifest models, checksums and TOML persistence.
    creator: Idempotent backup of the shell start-up files.
    relocator: Removal of backed up originals from the home directory.
    journal: Rollback journal used while restoring.
    restore: Validation, planning and execution of a restore.
    snapshot: Final tarball of the data directory before uninstall.
"""
