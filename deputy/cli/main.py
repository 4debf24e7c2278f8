"""Main entry point for the Deputy CLI."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from deputy.config import load_dotenv

from .commands import auth

app = typer.Typer(
    name="deputy",
    help="Deputy CLI - Manage your Deputy workforce data from the terminal",
    no_args_is_help=True,
)

app.add_typer(auth.app, name="auth")


def _version_callback(value: bool) -> None:
    """Handle --version and exit early."""
    if value:
        from deputy import __version__

        typer.echo(f"deputy {__version__}")
        raise typer.Exit()


def configure_logging(debug: bool) -> None:
    """Route library logging to stderr through rich; DEBUG with --debug."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the CLI version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    """Deputy CLI root callback."""
    _ = version
    load_dotenv()
    configure_logging(debug)


@app.command()
def version() -> None:
    """Show the CLI version."""
    from deputy import __version__

    typer.echo(f"deputy {__version__}")


if __name__ == "__main__":
    app()
