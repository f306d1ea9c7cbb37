"""CLI entry point for anitorrent."""

import json
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax

from anitorrent import cli_rss
from anitorrent.config.logging import setup_logging
from anitorrent.config.manager import ConfigManager
from anitorrent.utils.errors import AnitorrentError

app = typer.Typer(
    name="anitorrent",
    help="Publish anime episodes from a torrent release feed to PeerTube",
    no_args_is_help=True,
)
app.add_typer(cli_rss.app, name="rss")
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write logs to file"
    ),
) -> None:
    """anitorrent - torrent-to-PeerTube episode ingestion."""
    # Initialize logging before any command runs
    setup_logging(verbose=verbose, log_file=log_file)
    ctx.obj = {"verbose": verbose}


@app.command("version")
def show_version() -> None:
    """Show version information."""
    from anitorrent import __version__

    console.print(f"[bold cyan]anitorrent CLI[/bold cyan] v{__version__}")


@app.command("config")
def config_command(
    action: str = typer.Argument(..., help="Action: show or path"),
) -> None:
    """Inspect the anitorrent configuration.

    Actions:
        show: Print the configuration with secrets masked
        path: Print the configuration file location

    Examples:
        anitorrent config show

        anitorrent config path
    """
    try:
        manager = ConfigManager()

        if action == "show":
            data = manager.masked()
            console.print(f"[dim]{manager.config_file}[/dim]")
            console.print(Syntax(json.dumps(data, indent=2), "json"))
            missing = manager.load_config().missing_required()
            if missing:
                console.print(
                    f"\n[yellow]⚠[/yellow] Not set yet: {', '.join(missing)}"
                )

        elif action == "path":
            console.print(str(manager.config_file))

        else:
            console.print(f"[red]✗[/red] Unknown action: {action}")
            console.print("Valid actions: show, path")
            sys.exit(1)

    except AnitorrentError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    app()
