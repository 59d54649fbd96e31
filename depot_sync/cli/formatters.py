"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from depot_sync.models.report import DownloadReport
from depot_sync.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "NoInputIdentifiersError": [
            "• Pass package identifiers such as `core/redis` as arguments.",
            "• Or list them one per line in a file and pass `--file <path>`.",
        ],
        "PermissionFailedError": [
            "• Check that you can write to the download directory.",
            "• Choose another location with `--download-directory`.",
        ],
        "PackageNotFoundError": [
            "• Check the spelling of the package identifier.",
            "• The package may not be promoted to this channel; try `--channel`.",
            "• The package may not be built for this target; try `--target`.",
        ],
        "DepotApiError": [
            "• The depot rejected the request; check `--url` and `--auth`.",
            "• The depot might be temporarily unavailable.",
        ],
        "DownloadFailedError": [
            "• A network connection issue occurred.",
            "• Raise `--retries` or `--retry-delay-ms` on unreliable links.",
            "• Re-running is safe: artifacts already downloaded are reused.",
        ],
        "VerificationFailedError": [
            "• The artifact or its signing key may be corrupt or tampered with.",
            "• Delete the artifact from the download directory and run again.",
        ],
        "ArtifactFormatError": [
            "• A cached artifact is not a valid signed artifact.",
            "• Delete it from the download directory and run again.",
        ],
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `depot-sync config show` to see what is loaded.",
        ],
        "ClientConnectorError": [
            "• Could not connect to the depot. Check `--url` and your network.",
        ],
        "TimeoutError": [
            "• A request timed out, which may indicate network throttling.",
            "• Try reducing the number of `--workers`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any], console: Console):
    """Displays the current configuration, hiding sensitive data."""
    content = ""
    for key, value in sorted(config_data.items()):
        if key == "token":
            value = "****"
        content += escape(f"{key} = {value}") + "\n"

    console.print(
        Panel(
            content.strip() or "[dim]No settings; defaults apply.[/dim]",
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_summary_panel(report: DownloadReport, duration_s: float, console: Console):
    """Displays the final summary of a download run."""
    stats = report.stats

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("Artifacts:", f"[bold]{len(report.expanded)}[/bold]")
    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{stats.artifacts_downloaded}[/bold green]"
    )
    if stats.artifacts_cached > 0:
        stats_table.add_row("○ Cached:", f"[blue]{stats.artifacts_cached}[/blue]")
    if stats.artifacts_skipped > 0:
        stats_table.add_row(
            "○ Skipped:", f"[yellow]{stats.artifacts_skipped} (unsupported)[/yellow]"
        )
    if stats.artifacts_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.artifacts_failed}[/bold red]")
    stats_table.add_row("Keys fetched:", str(stats.keys_fetched))
    if stats.artifacts_verified > 0:
        stats_table.add_row("Verified:", f"[green]{stats.artifacts_verified}[/green]")
    stats_table.add_row("Size:", format_size(stats.total_size_downloaded))
    stats_table.add_row("Duration:", format_duration(duration_s))

    if report.failures:
        title, border = "[bold red]✗ Download Incomplete[/bold red]", "red"
    else:
        title, border = "[bold green]✓ Download Complete[/bold green]", "green"
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border,
            expand=False,
        )
    )
