"""Path management for zshprof.

This module provides the standardized locations zshprof uses inside the
user's home directory.

Defaults:
- Data: ~/.zsh-profiles/ (or $ZSHPROF_HOME)
- Pre-existing config backup: ~/.zsh-profiles/backups/pre-zshprof/
- Generated environment file: ~/.zshenv
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "zshprof"

# Environment variable overriding the data directory location
DATA_DIR_ENV = "ZSHPROF_HOME"

DATA_DIR_NAME = ".zsh-profiles"
CONFIG_FILENAME = "config.toml"
BACKUPS_DIRNAME = "backups"
PRE_EXISTING_BACKUP_DIRNAME = "pre-zshprof"
BACKUP_MANIFEST_FILENAME = "backup-manifest.toml"
ZSHENV_FILENAME = ".zshenv"
PROFILES_DIRNAME = "profiles"

# Subdirectories zshprof creates and owns, apart from backups/
OWNED_SUBDIRS: tuple[str, ...] = (PROFILES_DIRNAME, "shared", "cache")


def get_home_dir() -> Path:
    """Get the user's home directory.

    HOME takes precedence so that callers (and tests) can redirect
    every operation to another tree.

    Returns:
        Path to the home directory.

    Raises:
        RuntimeError: If the home directory cannot be determined.
    """
    home = os.environ.get("HOME")
    if home:
        return Path(home)
    try:
        return Path.home()
    except RuntimeError as e:
        msg = "Cannot determine home directory: HOME is not set"
        raise RuntimeError(msg) from e


def get_profiles_dir(home_dir: Path | None = None) -> Path:
    """Get the zshprof data directory path.

    Args:
        home_dir: Home directory to resolve against. Defaults to get_home_dir().

    Returns:
        Path to ~/.zsh-profiles/ (or $ZSHPROF_HOME).
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override)
    return (home_dir or get_home_dir()) / DATA_DIR_NAME


def get_config_path(profiles_dir: Path | None = None) -> Path:
    """Get the zshprof configuration file path.

    Returns:
        Path to ~/.zsh-profiles/config.toml.
    """
    return (profiles_dir or get_profiles_dir()) / CONFIG_FILENAME


def get_backups_dir(profiles_dir: Path | None = None) -> Path:
    """Get the directory holding every backup zshprof keeps.

    Returns:
        Path to ~/.zsh-profiles/backups/.
    """
    return (profiles_dir or get_profiles_dir()) / BACKUPS_DIRNAME


def get_profile_dir(name: str, profiles_dir: Path | None = None) -> Path:
    """Get the directory of one profile.

    Returns:
        Path to ~/.zsh-profiles/profiles/<name>/.
    """
    return (profiles_dir or get_profiles_dir()) / PROFILES_DIRNAME / name


def get_pre_existing_backup_dir(profiles_dir: Path | None = None) -> Path:
    """Get the pre-existing shell configuration backup directory.

    The backup is taken once, before zshprof replaces the user's shell
    start-up files, and is what "restore original" replays on uninstall.

    Returns:
        Path to ~/.zsh-profiles/backups/pre-zshprof/.
    """
    return get_backups_dir(profiles_dir) / PRE_EXISTING_BACKUP_DIRNAME


def get_backup_manifest_path(backup_dir: Path) -> Path:
    """Get the manifest path inside a backup directory.

    Returns:
        Path to <backup_dir>/backup-manifest.toml.
    """
    return backup_dir / BACKUP_MANIFEST_FILENAME


def get_zshenv_path(home_dir: Path | None = None) -> Path:
    """Get the path of the environment file zshprof generates.

    Returns:
        Path to ~/.zshenv.
    """
    return (home_dir or get_home_dir()) / ZSHENV_FILENAME


def is_installed(profiles_dir: Path | None = None) -> bool:
    """Check whether zshprof has been initialized.

    Returns:
        True if the data directory and its config.toml both exist.
    """
    directory = profiles_dir or get_profiles_dir()
    return directory.is_dir() and (directory / CONFIG_FILENAME).is_file()


def ensure_private_dir(path: Path, name: str) -> Path:
    """Create a directory accessible by its owner only.

    Shell history and environment files can contain secrets, so every
    directory holding copies of them is created with mode 0700.

    Args:
        path: Directory path to create.
        name: Human-readable name for error messages.

    Returns:
        The created/existing directory path.

    Raises:
        RuntimeError: If the directory cannot be created or restricted.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
        path.chmod(0o700)
    except PermissionError as e:
        msg = f"Cannot create {name} directory {path}: Permission denied"
        raise RuntimeError(msg) from e
    except OSError as e:
        msg = f"Cannot create {name} directory {path}: {e}"
        raise RuntimeError(msg) from e
    return path


def get_user_theme_path() -> Path:
    """Get the user theme configuration path.

    Returns:
        Path to ~/.zsh-profiles/theme.toml.
    """
    return get_profiles_dir() / "theme.toml"
