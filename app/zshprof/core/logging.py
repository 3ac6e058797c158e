"""Logging configuration for zshprof.

Library modules only create module-level loggers; the CLI calls
setup_logging() once so that records are rendered on stderr through Rich.
"""

import logging

from rich.logging import RichHandler

from zshprof.utils.formatting import err_console


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure the zshprof logger hierarchy.

    Args:
        verbose: Emit DEBUG records.
        quiet: Only emit ERROR records.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logger = logging.getLogger("zshprof")
    logger.setLevel(level)

    # Replace any handler from a previous invocation (CliRunner re-enters)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = RichHandler(
        console=err_console,
        show_time=False,
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
