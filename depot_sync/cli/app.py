"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from depot_sync import __version__
from depot_sync.core.download_manager import start
from depot_sync.exceptions import BatchFailedError
from depot_sync.models.config import DEFAULT_PRODUCT
from depot_sync.storage.config_manager import ConfigManager
from depot_sync.utils.path import get_config_dir, parse_ident_lines, read_ident_file

from .formatters import print_config, print_summary_panel
from .reporter import Reporter

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("depot_sync")

app = typer.Typer(
    name="depot-sync",
    help=(
        "Download packages, their transitive dependencies and signing keys from a"
        " package depot. Use 'depot-sync <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)
config_app = typer.Typer(help="Create or inspect the configuration file.")
app.add_typer(config_app, name="config")

CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (debug output).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
):
    """Package depot downloader"""
    if version:
        console.print(f"[bold]depot-sync[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    logging.getLogger("depot_sync").setLevel("DEBUG" if verbose >= 1 else "INFO")

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@config_app.command("init")
def config_init(
    url: str | None = typer.Option(None, "--url", "-u", help="Depot URL."),
    channel: str | None = typer.Option(None, "--channel", "-c", help="Channel."),
    auth: str | None = typer.Option(
        None, "--auth", "-z", help="Authentication token for the depot."
    ),
    download_directory: Path | None = typer.Option(  # noqa: B008
        None, "--download-directory", help="Default download directory."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Write a configuration file with the given defaults."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        key: value
        for key, value in {
            "depot_url": url,
            "channel": channel,
            "token": auth,
            "download_path": download_directory,
        }.items()
        if value is not None
    }
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@config_app.command("show")
def config_show():
    """Display the configuration file's settings."""
    if not CONFIG_FILE.is_file():
        console.print(
            "[yellow]No config file found.[/] Run [cyan]depot-sync config init[/cyan]"
            " to create one; defaults apply."
        )
        raise typer.Exit()
    print_config(CONFIG_FILE, ConfigManager(CONFIG_FILE).get_display_dict(), console)


def _read_idents_from_stdin() -> list[str]:
    """Reads package identifiers from stdin, one per line."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Pipe identifiers or redirect"
            " a file.[/yellow]"
        )
        raise typer.Exit(code=1)
    console.print("[dim]Reading package identifiers from stdin...[/dim]")
    return parse_ident_lines(sys.stdin)


def collect_idents(
    idents: list[str] | None, files: list[Path] | None, use_stdin: bool
) -> list[str]:
    """Gathers identifiers from arguments, files and stdin, dropping duplicates."""
    collected = list(idents or [])
    for path in files or []:
        collected.extend(read_ident_file(path))
    if use_stdin:
        collected.extend(_read_idents_from_stdin())
    return list(dict.fromkeys(collected))


@app.command(name="download")
def download_command(
    idents: list[str] | None = typer.Argument(  # noqa: B008
        None, help="Package identifiers, e.g. core/redis or core/redis/4.0.14."
    ),
    files: list[Path] | None = typer.Option(  # noqa: B008
        None,
        "--file",
        "-l",
        help="File with one package identifier per line. May be repeated.",
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read package identifiers from standard input."
    ),
    url: str | None = typer.Option(None, "--url", "-u", help="Depot URL."),
    channel: str | None = typer.Option(
        None, "--channel", "-c", help="Channel to resolve packages from."
    ),
    target: str | None = typer.Option(
        None, "--target", "-t", help="Target, e.g. x86_64-linux. Defaults to host."
    ),
    download_directory: Path | None = typer.Option(  # noqa: B008
        None, "--download-directory", help="Where artifacts and keys are stored."
    ),
    auth: str | None = typer.Option(
        None, "--auth", "-z", help="Authentication token for the depot."
    ),
    verify: bool | None = typer.Option(
        None, "--verify/--no-verify", help="Verify artifact signatures."
    ),
    retries: int | None = typer.Option(
        None, "--retries", help="Download attempts per artifact."
    ),
    retry_delay_ms: int | None = typer.Option(
        None, "--retry-delay-ms", help="Delay between download attempts."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous downloads."
    ),
    keep_going: bool = typer.Option(
        False,
        "--keep-going",
        help="Try every artifact even after one fails; report failures at the end.",
    ),
):
    """Download packages with their dependencies and signing keys."""
    cli_options = {
        "idents": collect_idents(idents, files, stdin),
        "depot_url": url,
        "channel": channel,
        "target": target,
        "download_path": download_directory,
        "token": auth,
        "verify": verify,
        "retries": retries,
        "retry_delay_ms": retry_delay_ms,
        "max_workers": workers,
        "fail_fast": not keep_going,
        "product": DEFAULT_PRODUCT,
        "product_version": __version__,
    }
    config = ConfigManager(CONFIG_FILE).load_config(cli_options)

    async def _download_async():
        async with Reporter(console=console) as reporter:
            return await start(config, reporter)

    try:
        report = asyncio.run(_download_async())
    except BatchFailedError as e:
        if e.report is not None:
            print_summary_panel(e.report, e.report.stats.elapsed, console)
        raise
    print_summary_panel(report, report.stats.elapsed, console)
