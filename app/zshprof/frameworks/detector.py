"""Best-effort detection of an existing zsh framework.

Detection only inspects well-known install locations under the home
directory. It never raises for I/O problems: an undetectable framework is
reported as "none" so that taking a backup is never blocked by it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from zshprof.backup.manifest import DetectedFramework

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FrameworkSignature:
    """Where a framework lives and which file configures it.

    Attributes:
        name: Framework name as recorded in the manifest.
        install_dirs: Candidate install directories, relative to home.
        config_file: Configuration file, relative to home.
    """

    name: str
    install_dirs: tuple[str, ...]
    config_file: str


# Known frameworks and their default locations
KNOWN_FRAMEWORKS: tuple[FrameworkSignature, ...] = (
    FrameworkSignature("oh-my-zsh", (".oh-my-zsh",), ".zshrc"),
    FrameworkSignature("zimfw", (".zim",), ".zimrc"),
    FrameworkSignature("prezto", (".zprezto",), ".zpreztorc"),
    FrameworkSignature("zinit", (".local/share/zinit", ".zinit"), ".zshrc"),
    FrameworkSignature("zap", (".local/share/zap",), ".zshrc"),
)


def _config_mtime(path: Path) -> float:
    """Modification time of a config file, 0.0 if unavailable."""
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def _detect_one(home_dir: Path, signature: FrameworkSignature) -> DetectedFramework | None:
    """Check a single framework signature against the home directory."""
    for install_dir in signature.install_dirs:
        candidate = home_dir / install_dir
        try:
            found = candidate.is_dir()
        except OSError as e:
            logger.debug("Cannot inspect %s: %s", candidate, e)
            continue
        if found:
            config = home_dir / signature.config_file
            config_files = [str(config)] if config.exists() else []
            return DetectedFramework(
                name=signature.name,
                path=str(candidate),
                config_files=config_files,
            )
    return None


def detect_existing_framework(home_dir: Path) -> DetectedFramework | None:
    """Detect the zsh framework the user already has installed.

    If several frameworks are installed, the one whose configuration file
    was modified most recently is reported.

    Args:
        home_dir: Home directory to inspect.

    Returns:
        The detected framework, or None if none was found.
    """
    detected = [
        framework
        for framework in (_detect_one(home_dir, sig) for sig in KNOWN_FRAMEWORKS)
        if framework is not None
    ]

    if not detected:
        logger.info("No existing framework detected in %s", home_dir)
        return None

    if len(detected) > 1:
        names = ", ".join(f.name for f in detected)
        logger.info("Multiple frameworks detected (%s), using most recently configured", names)

    chosen = max(
        detected,
        key=lambda f: max((_config_mtime(Path(c)) for c in f.config_files), default=0.0),
    )
    logger.info("Detected %s framework at %s", chosen.name, chosen.path)
    return chosen
