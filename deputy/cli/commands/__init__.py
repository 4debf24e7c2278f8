"""CLI command modules."""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console

from deputy.exceptions import DeputyError
from deputy.secrets.store import KeychainStore, Store

_console = Console(stderr=True)


def fail(error: DeputyError | str) -> NoReturn:
    """Print an error in red and exit non-zero."""
    _console.print(f"[red]Error: {error}[/red]", highlight=False)
    raise typer.Exit(1)


def open_store() -> Store:
    """Open the credential store, or exit with an error message."""
    try:
        return KeychainStore.open()
    except DeputyError as e:
        fail(f"failed to open keychain: {e}")
