from __future__ import annotations

import logging
from typing import Annotated

import typer

from .base import configure_logging, get_version
from .commands.reconcile import reconcile_command
from .commands.release import resolve_release_command
from .commands.run import run_command

configure_logging()
app = typer.Typer(
    help="OperatorPipeline reconciliation engine",
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.command("run")(run_command)
app.command("reconcile")(reconcile_command)
app.command("resolve-release")(resolve_release_command)


@app.callback()
def callback(
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Log at DEBUG level"),
    ] = False,
) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@app.command("version")
def version_command() -> None:
    """Print the installed package version."""
    typer.echo(get_version())


def main() -> None:
    """Main entry point for package CLI.

    Invokes the Typer application, which handles command parsing and
    execution.
    """
    app()


if __name__ == "__main__":
    main()
