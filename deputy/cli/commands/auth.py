"""Authentication commands for the Deputy CLI."""

from __future__ import annotations

import json
import signal
import threading
from contextlib import contextmanager
from typing import Iterator

import httpx
import typer
from rich.console import Console

from deputy.auth.server import SetupServer
from deputy.auth.validation import validate_geo, validate_install
from deputy.client import DeputyClient
from deputy.exceptions import CredentialsNotFoundError, DeputyError, SetupCancelledError
from deputy.secrets import Credentials, resolve_credentials
from deputy.secrets.store import Store

from ..constants import (
    DEFAULT_LOGIN_TIMEOUT_SECONDS,
    DEPUTY_HOST_SUFFIX,
    MASKED_TOKEN,
    TOKEN_MASK_MIN_LENGTH,
)
from . import fail, open_store

app = typer.Typer(help="Manage authentication")
console = Console()


def create_setup_server(store: Store) -> SetupServer:
    return SetupServer(store)


def mask_token(token: str) -> str:
    if len(token) > TOKEN_MASK_MIN_LENGTH:
        return f"{token[:4]}...{token[-4:]}"
    return MASKED_TOKEN


def _install_host(install: str, geo: str) -> str:
    if geo:
        return f"{install}.{geo}.{DEPUTY_HOST_SUFFIX}"
    return f"{install}.{DEPUTY_HOST_SUFFIX}"


@contextmanager
def _cancel_on_interrupt() -> Iterator[threading.Event]:
    """Turn Ctrl-C / SIGTERM into a cancel event instead of KeyboardInterrupt."""
    cancel = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    def _handler(signum: int, frame: object) -> None:
        cancel.set()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield cancel
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@app.command()
def login(
    timeout: float = typer.Option(
        DEFAULT_LOGIN_TIMEOUT_SECONDS,
        "--timeout",
        help="Give up after this many seconds (0 waits until Ctrl-C)",
    ),
) -> None:
    """Authenticate via browser.

    Opens a local page where you enter your install, region and API token.
    """
    store = open_store()
    server = create_setup_server(store)

    def _on_ready(url: str) -> None:
        console.print("\n[bold]Opening browser for authentication...[/bold]")
        console.print(f"If it doesn't open, visit: {url}\n")
        console.print("[dim]Waiting for authentication...[/dim]")

    try:
        with _cancel_on_interrupt() as cancel:
            result = server.start(timeout=timeout or None, cancel=cancel, on_ready=_on_ready)
    except SetupCancelledError:
        console.print("\n[yellow]Login cancelled.[/yellow]")
        raise typer.Exit(1)
    except DeputyError as e:
        fail(e)

    console.print("\n[green]Authenticated successfully![/green]")
    console.print(f"Install: {_install_host(result.install, result.geo)}", highlight=False)


@app.command()
def add(
    token: str = typer.Option(..., "--token", "-t", help="Deputy permanent API token"),
    install: str = typer.Option(..., "--install", "-i", help="Deputy install name"),
    geo: str = typer.Option(..., "--geo", "-g", help="Geographic region: au, uk, or na"),
) -> None:
    """Add credentials without the browser."""
    token = token.strip()
    install = install.strip().lower()
    geo = geo.strip().lower()

    try:
        validate_install(install)
        validate_geo(geo)
    except DeputyError as e:
        fail(e)
    if not token:
        fail("--token must not be empty")

    store = open_store()
    try:
        store.set(Credentials(token=token, install=install, geo=geo))
    except DeputyError as e:
        fail(f"failed to save credentials: {e}")

    console.print(f"[green]Credentials saved for {_install_host(install, geo)}[/green]", highlight=False)


@app.command()
def status(
    json_output: bool = typer.Option(False, "--json", help="Print status as JSON"),
) -> None:
    """Show current authentication status."""
    try:
        creds = resolve_credentials(open_store)
    except CredentialsNotFoundError:
        console.print("[yellow]Not authenticated.[/yellow]")
        console.print("Set DEPUTY_TOKEN or run [bold]deputy auth login[/bold] to authenticate.")
        raise typer.Exit(1)
    except DeputyError as e:
        fail(e)

    info = {
        "install": creds.install,
        "region": creds.geo.upper(),
        "base_url": creds.base_url(),
        "token_masked": mask_token(creds.token),
        "added": creds.created_at.isoformat(timespec="seconds"),
    }

    if json_output:
        typer.echo(json.dumps(info, indent=2))
        return

    console.print("[green]Authenticated[/green]")
    console.print(f"  Install:  {info['install']}", highlight=False)
    console.print(f"  Region:   {info['region']}", highlight=False)
    console.print(f"  Base URL: {info['base_url']}", highlight=False)
    console.print(f"  Token:    {info['token_masked']}", highlight=False)
    console.print(f"  Added:    {info['added']}", highlight=False)


@app.command()
def logout() -> None:
    """Remove stored credentials."""
    store = open_store()
    try:
        store.delete()
    except CredentialsNotFoundError:
        console.print("[yellow]No credentials to remove.[/yellow]")
        return
    except DeputyError as e:
        fail(e)

    console.print("[green]Credentials removed.[/green]")


@app.command()
def test() -> None:
    """Test authentication by calling the /me endpoint."""
    try:
        creds = resolve_credentials(open_store)
        with DeputyClient(creds) as client:
            me = client.me()
    except CredentialsNotFoundError:
        fail("not authenticated; run 'deputy auth login' first")
    except (DeputyError, httpx.HTTPError) as e:
        fail(f"authentication failed: {e}")

    console.print("[green]Authentication successful![/green]")
    console.print(f"User: {me.get('Name', '')} ({me.get('PrimaryEmail', '')})", highlight=False)
    console.print(f"ID:   {me.get('EmployeeId', '')}", highlight=False)
