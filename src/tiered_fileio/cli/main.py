"""Main entry point for the tfio CLI.

Provides a Typer-based CLI for checking how canonical locations are mapped
to the cache tier, listing through the mapping layer, and managing the
configuration file.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tiered_fileio import __version__
from tiered_fileio.config import (
    Configuration,
    ConfigurationError,
    ensure_config_exists,
    get_config_path,
)
from tiered_fileio.io.mapping import PathMappingFileIO
from tiered_fileio.logging_config import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

app = typer.Typer(
    name="tfio",
    help="Read-through cache path mapping for object storage",
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"tfio version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output to stderr",
    ),
    log_dir: Optional[Path] = typer.Option(
        None,
        "--log-dir",
        help="Also write logs to this directory",
    ),
) -> None:
    """tfio: inspect read-through cache path mapping.

    ## Commands

    * [bold cyan]resolve[/bold cyan] - Show where reads of a location are served from
    * [bold cyan]ls[/bold cyan] - List files under a prefix through the mapping layer
    * [bold cyan]config[/bold cyan] - Show or change configuration

    ## Getting Started

    1. Point reads at the cache tier:
       [dim]$ tfio config set cache.baseuri alluxio://localhost:19998/[/dim]
       [dim]$ tfio config set canonical.baseuri gs://my-bucket/[/dim]

    2. Check a mapping:
       [dim]$ tfio resolve gs://my-bucket/warehouse/t/data/f.parquet[/dim]
    """
    setup_logging(log_dir, verbose=verbose)


def load_file_io(config_path: Optional[Path], strict: bool = False) -> PathMappingFileIO:
    """Build a PathMappingFileIO from a config file.

    Args:
        config_path: Config file (defaults to the standard location)
        strict: Initialize through flat properties, which requires both
            ``cache.baseuri`` and ``canonical.baseuri``

    Returns:
        Initialized PathMappingFileIO
    """
    try:
        conf = Configuration.load(config_path) if config_path else Configuration.load()
    except FileNotFoundError as e:
        console.print(f"[red]{e}. Run 'tfio config set' first.[/red]")
        raise typer.Exit(1)

    if not strict:
        return PathMappingFileIO(conf)

    file_io = PathMappingFileIO()
    try:
        file_io.initialize(conf.as_dict())
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    return file_io


@app.command()
def resolve(
    paths: List[str] = typer.Argument(..., help="Canonical locations to resolve"),
    config_path: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Fail unless both cache.baseuri and canonical.baseuri are set",
    ),
) -> None:
    """Show which location a read of each path would open."""
    file_io = load_file_io(config_path, strict=strict)
    try:
        table = Table(title="Read Locations")
        table.add_column("Requested", style="cyan")
        table.add_column("Opened", style="green")
        table.add_column("Mapped")

        for path in paths:
            mapped = file_io.resolve_read_location(path)
            table.add_row(
                mapped.original_path,
                mapped.effective_path,
                "yes" if mapped.is_mapped else "[dim]no[/dim]",
            )

        console.print(table)
    finally:
        file_io.close()


@app.command("ls")
def list_files(
    prefix: str = typer.Argument(..., help="Canonical prefix to list"),
    config_path: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
) -> None:
    """List files under a prefix, reading the listing through the cache tier."""
    file_io = load_file_io(config_path)
    try:
        table = Table(title=f"Files under {prefix}")
        table.add_column("Location", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Modified")

        count = 0
        for info in file_io.list_prefix(prefix):
            modified = datetime.fromtimestamp(info.created_at_millis / 1000, tz=timezone.utc)
            table.add_row(info.location, str(info.size), modified.strftime("%Y-%m-%d %H:%M:%S"))
            count += 1

        console.print(table)
        console.print(f"[dim]{count} file(s)[/dim]")
    except (ValueError, OSError, BotoCoreError, ClientError) as e:
        logger.error("Listing %s failed: %s", prefix, e)
        console.print(f"[red]Error listing {escape(prefix)}: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    finally:
        file_io.close()


@app.command()
def config(
    action: str = typer.Argument(
        ...,
        help="Action to perform (show, set, path)",
    ),
    key: str = typer.Argument(
        None,
        help="Configuration key (for set action)",
    ),
    value: str = typer.Argument(
        None,
        help="Configuration value (for set action)",
    ),
    config_path: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
) -> None:
    """Manage configuration.

    Show, set, or display the path to the configuration file.

    Examples:
        tfio config show          # Show all configuration
        tfio config set cache.baseuri alluxio://localhost:19998/
        tfio config path          # Show config file path
    """
    path = config_path or get_config_path()

    if action == "show":
        cfg = ensure_config_exists(path)
        lines = [f"[cyan]{k}:[/cyan] {v or '(not set)'}" for k, v in sorted(cfg.as_dict().items())]
        console.print(
            Panel.fit(
                "\n".join(lines) or "[dim]empty[/dim]",
                title="Configuration",
                border_style="green",
            )
        )

    elif action == "set":
        if not key or value is None:
            console.print("[red]Usage: tfio config set <key> <value>[/red]")
            raise typer.Exit(1)

        cfg = ensure_config_exists(path)
        cfg.set(key, value)
        cfg.save(path)
        logger.info("Set %s = %s in %s", key, value, path)
        console.print(f"[green]Set {key} = {value}[/green]")

    elif action == "path":
        typer.echo(str(path))

    else:
        console.print(f"[red]Unknown action: {action}[/red]")
        console.print("Valid actions: show, set, path")
        raise typer.Exit(1)


def cli_entry() -> None:
    """Entry point for the CLI application."""
    app()


if __name__ == "__main__":
    cli_entry()
