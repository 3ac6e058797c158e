"""Zsh framework detection.

Frameworks are only detected and recorded, never installed.
"""

from zshprof.frameworks.detector import KNOWN_FRAMEWORKS, detect_existing_framework

__all__ = ["KNOWN_FRAMEWORKS", "detect_existing_framework"]
