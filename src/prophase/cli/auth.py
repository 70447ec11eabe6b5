"""CLI commands for authentication."""

import asyncio
from datetime import datetime
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from prophase.auth.bridge import CallbackBridge
from prophase.auth.browser import SystemBrowser
from prophase.auth.channel import LoopbackDeepLinkChannel
from prophase.auth.models import StoredToken
from prophase.auth.session import SessionController
from prophase.auth.storage import clear_token, load_token, save_token
from prophase.exceptions import ProphaseError
from prophase.settings import get_settings

auth_app = typer.Typer(name="auth", help="Manage authentication.")
console = Console()


class _ConsoleBrowser(SystemBrowser):
    """System browser that also prints the URL in case nothing opens."""

    async def open(self, url: str) -> None:
        console.print("\n[dim]Opening browser for authentication...[/dim]")
        console.print("[dim]If browser doesn't open, visit:[/dim]")
        console.print(f"[link={url}]{url[:80]}...[/link]\n")
        await super().open(url)


@auth_app.command()
def login(
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Seconds to wait for the browser login to finish."),
    ] = None,
) -> None:
    """Log in through the system browser."""
    try:
        stored = asyncio.run(_login_async(timeout))
    except ProphaseError as e:
        console.print(f"\n[red]Authentication failed: {e}[/red]")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130) from None

    obtained = datetime.fromtimestamp(stored.obtained_at)
    console.print(
        f"\n[green bold]Successfully authenticated[/green bold] "
        f"[dim]({obtained.strftime('%Y-%m-%d %H:%M')})[/dim]"
    )


async def _login_async(timeout: float | None) -> StoredToken:
    """Run one login attempt and persist the resulting token."""
    settings = get_settings()
    config = settings.oauth_config()

    async with LoopbackDeepLinkChannel(settings.deeplink_host, settings.deeplink_port) as channel:
        bridge = CallbackBridge(channel, allowed_schemes=settings.allowed_schemes)
        controller = SessionController(
            config,
            bridge,
            browser=_ConsoleBrowser(),
            timeout=timeout if timeout is not None else settings.oauth_timeout,
            http_timeout=settings.http_timeout,
            verifier_length=settings.verifier_length,
        )
        console.print("[dim]Waiting for the browser to redirect back...[/dim]")
        try:
            token = await controller.start()
        finally:
            bridge.close()

    return await save_token(token)


@auth_app.command()
def status() -> None:
    """Show whether a token is stored."""
    stored = asyncio.run(load_token())
    settings = get_settings()

    table = Table(title="Authentication Status")
    table.add_column("Client", style="cyan")
    table.add_column("Endpoint", style="green")
    table.add_column("Status", style="yellow")

    if stored is None:
        status_text = "Not logged in (run `prophase auth login`)"
    else:
        obtained = datetime.fromtimestamp(stored.obtained_at)
        status_text = f"Logged in since {obtained.strftime('%Y-%m-%d %H:%M')}"
    table.add_row(settings.client_id, settings.auth_endpoint, status_text)

    console.print(table)


@auth_app.command()
def logout() -> None:
    """Remove the stored token."""
    if asyncio.run(clear_token()):
        console.print("[green]Logged out[/green]")
    else:
        console.print("[dim]No stored token[/dim]")
