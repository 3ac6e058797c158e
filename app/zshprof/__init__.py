"""zshprof - isolated zsh profiles with a safe way back.

This package manages the pre-existing shell configuration backup that is
taken before zshprof adopts a home directory, and the cleanup and
restoration performed when it is uninstalled.
"""

__version__ = "0.4.0"
