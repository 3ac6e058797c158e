"""Promotion of a profile to the root shell configuration.

An alternative to restoring the original configuration on uninstall:
the start-up files of one profile are copied into the home directory.
Copying goes through the same plan, journal and rollback as a restore.
"""

import logging
from pathlib import Path

from zshprof.backup.creator import SHELL_CONFIG_FILES
from zshprof.backup.manifest import BackedUpFile
from zshprof.backup.restore import (
    ConflictPolicy,
    ConflictResolver,
    RestoreError,
    RestorePlan,
    RestoreResult,
    execute_plan,
    plan_action,
    policy_resolver,
)
from zshprof.core.paths import PROFILES_DIRNAME, get_profile_dir

logger = logging.getLogger(__name__)


def list_profiles(profiles_dir: Path) -> list[str]:
    """Names of the profiles in a data directory, sorted."""
    root = profiles_dir / PROFILES_DIRNAME
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if p.is_dir() and not p.name.startswith("."))


def _profile_dir(profiles_dir: Path, name: str) -> Path:
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        msg = f"Invalid profile name: {name!r}"
        raise RestoreError(msg)

    profile_dir = get_profile_dir(name, profiles_dir)
    if not profile_dir.is_dir():
        available = ", ".join(list_profiles(profiles_dir)) or "none"
        msg = f"Profile '{name}' not found at {profile_dir} (available: {available})"
        raise RestoreError(msg)
    return profile_dir


def plan_promotion(
    profiles_dir: Path,
    name: str,
    home_dir: Path,
    resolver: ConflictResolver,
) -> RestorePlan:
    """Plan copying a profile's start-up files and history into home.

    Only files present in the profile are planned. Nothing on disk is
    modified.

    Args:
        profiles_dir: zshprof data directory.
        name: Profile to promote.
        home_dir: Home directory to copy into.
        resolver: Conflict decision per file.

    Returns:
        RestorePlan whose sources live in the profile directory.

    Raises:
        RestoreError: If the profile does not exist or a file cannot be read.
    """
    profile_dir = _profile_dir(profiles_dir, name)

    actions = []
    for filename in SHELL_CONFIG_FILES:
        source = profile_dir / filename
        if not source.exists() and not source.is_symlink():
            continue
        try:
            entry = BackedUpFile.capture(source, filename)
        except OSError as e:
            msg = f"Cannot read {source}: {e}"
            raise RestoreError(msg) from e
        actions.append(plan_action(entry, source, home_dir / filename, resolver))

    if not actions:
        logger.warning("Profile '%s' has no shell configuration files", name)
    return RestorePlan(actions=tuple(actions), home_dir=home_dir, backup_dir=profile_dir)


def promote_profile(
    profiles_dir: Path,
    name: str,
    home_dir: Path,
    resolver: ConflictResolver | ConflictPolicy = ConflictPolicy.BACKUP_EXISTING,
) -> RestoreResult:
    """Plan and execute the promotion of one profile.

    Raises:
        RestoreError: If the promotion cannot be planned.
    """
    if isinstance(resolver, ConflictPolicy):
        resolver = policy_resolver(resolver)
    plan = plan_promotion(profiles_dir, name, home_dir, resolver)
    logger.info("Promoting profile '%s' (%d files)", name, len(plan.actions))
    return execute_plan(plan)
