"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from typing import Annotated

import typer

from zshprof import __version__
from zshprof.cli.commands import backup, uninstall
from zshprof.core.logging import setup_logging

app = typer.Typer(
    name="zshprof",
    help="Isolated zsh profiles with a safe way back.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"zshprof version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only report errors.",
        ),
    ] = False,
) -> None:
    """zshprof - manage isolated zsh profiles.

    Your existing shell configuration is backed up before zshprof takes
    over and can be restored on uninstall.
    """
    setup_logging(verbose=verbose, quiet=quiet)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


app.add_typer(backup.app, name="backup")
app.add_typer(uninstall.app, name="uninstall")


if __name__ == "__main__":
    app()
