"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

ZSHRC_CONTENT = "# my zshrc\nexport EDITOR=nvim\nalias ll='ls -la'\n"
HISTORY_CONTENT = ": 1700000000:0;ls\n: 1700000001:0;git status\n"
GENERATED_ZSHENV = (
    "# Managed by zshprof - do not edit\n"
    'export ZDOTDIR="$HOME/.zsh-profiles/profiles/work"\n'
)


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    """Home directory with a typical pre-existing zsh setup."""
    home = tmp_path / "home"
    home.mkdir()
    (home / ".zshrc").write_text(ZSHRC_CONTENT)
    (home / ".zprofile").write_text("export PATH=$HOME/bin:$PATH\n")
    (home / ".zsh_history").write_text(HISTORY_CONTENT)
    (home / ".zsh_history").chmod(0o600)
    return home


@pytest.fixture
def profiles_dir(home_dir: Path) -> Path:
    """Installed zshprof data directory inside home_dir."""
    profiles = home_dir / ".zsh-profiles"
    (profiles / "profiles" / "work").mkdir(parents=True)
    (profiles / "profiles" / "work" / ".zshrc").write_text("# work profile\n")
    (profiles / "shared").mkdir()
    (profiles / "cache").mkdir()
    (profiles / "config.toml").write_text('active_profile = "work"\n')
    return profiles


@pytest.fixture
def backup_dir(profiles_dir: Path) -> Path:
    """Location of the pre-existing configuration backup (not yet created)."""
    return profiles_dir / "backups" / "pre-zshprof"


@pytest.fixture
def home_env(home_dir: Path) -> Iterator[Path]:
    """Point HOME at home_dir and clear any data directory override."""
    env = {key: value for key, value in os.environ.items() if key != "ZSHPROF_HOME"}
    env["HOME"] = str(home_dir)
    with patch.dict(os.environ, env, clear=True):
        yield home_dir
