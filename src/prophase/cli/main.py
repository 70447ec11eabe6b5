"""Command-line interface for prophase."""

import asyncio
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from prophase.auth.channel import forward_deep_link
from prophase.cli.auth import auth_app
from prophase.exceptions import DeepLinkForwardError
from prophase.settings import get_settings


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


app = typer.Typer(
    name="prophase",
    help="ProPhase desktop login.",
)
app.add_typer(auth_app)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose logging.",
        ),
    ] = False,
) -> None:
    """ProPhase desktop login."""
    _setup_logging(verbose)


@app.command()
def deeplink(
    url: Annotated[
        str,
        typer.Argument(help="Redirect URL the OS opened, e.g. myapp://callback?code=..."),
    ],
) -> None:
    """Hand a deep-link URL to the login that is waiting for it.

    Register this command as the handler for the redirect URI scheme.
    """
    settings = get_settings()
    console = Console(stderr=True)
    try:
        asyncio.run(forward_deep_link(url, settings.deeplink_host, settings.deeplink_port))
    except DeepLinkForwardError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
