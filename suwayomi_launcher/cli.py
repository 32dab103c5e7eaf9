"""Console entry point: bootstrap the server, open it, stop it on exit."""

from __future__ import annotations

import atexit
import logging
import signal
import time
import webbrowser
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .errors import LauncherError
from .launcher import Launcher
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)
console = Console(stderr=True)

WATCH_INTERVAL = 0.5


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_time=True,
                show_path=False,
            )
        ],
    )
    # Per-probe request logs would drown the startup wait.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def open_in_browser(url: str) -> bool:
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        logger.error(f"Failed to launch browser: {e}")
        return False
    if not opened:
        logger.warning(f"No browser available, open {url} manually")
    return opened


def _raise_system_exit(signum, _frame) -> None:
    raise SystemExit(128 + signum)


@click.command(name="suwayomi-launcher")
@click.version_option(version=__version__, prog_name="suwayomi-launcher")
@click.argument("url", required=False)
@click.option(
    "--resource-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Extra directory to search for jre/ and bin/Suwayomi-Server.jar",
)
@click.option("--no-browser", is_flag=True, help="Do not open the web UI in the default browser")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(url: Optional[str], resource_dir: Optional[Path], no_browser: bool, verbose: bool) -> None:
    """Start (or reuse) a local Suwayomi server and open its web UI.

    URL overrides the server address, e.g. http://127.0.0.1:4567
    """
    _configure_logging(verbose)

    supervisor = ProcessSupervisor()
    launcher = Launcher(supervisor, cli_url=url)
    atexit.register(launcher.shutdown)
    signal.signal(signal.SIGTERM, _raise_system_exit)

    try:
        try:
            with console.status("Starting Suwayomi server..."):
                result = launcher.bootstrap(resource_dir)
            base_url = result.base_url
            console.print(f"[green]Suwayomi server ready: {base_url}[/green]")
        except LauncherError as e:
            logger.error(f"launcher bootstrap failed: {e}")
            base_url = launcher.fallback_base_url()
            console.print(f"[yellow]Continuing in degraded mode with {base_url}[/yellow]")

        if not no_browser:
            open_in_browser(base_url)

        if not supervisor.is_tracking:
            return

        console.print("[dim]Press Ctrl+C to stop the server.[/dim]")
        while supervisor.is_running:
            time.sleep(WATCH_INTERVAL)
        console.print("[yellow]Server process exited.[/yellow]")
    except KeyboardInterrupt:
        console.print("[dim]Stopping Suwayomi server...[/dim]")
    finally:
        launcher.shutdown()
