"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from packsync.models.config import SyncConfig
from packsync.models.stats import ProvisionStats
from packsync.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "DownloadFailed": [
            "• Check your internet connection.",
            "• The file host may be temporarily unavailable; try again later.",
            "• Raise `max_retries` in the configuration file.",
        ],
        "ExtractionFailed": [
            "• The archive may be corrupt. Run `packsync provision --repair`.",
            "• Make sure there is enough free disk space.",
        ],
        "UnsupportedArchiveError": [
            "• Ask the bundle maintainer to publish a .zip archive.",
        ],
        "InstallFailed": [
            "• The downloaded Java package did not contain a java executable.",
            "• Delete the runtime folder and try again.",
        ],
        "BundleError": [
            "• Check the bundle file is valid JSON with at least an `id`.",
        ],
        "ConfigurationError": [
            "• Run `packsync validate` to see which setting is wrong.",
            "• Run `packsync init --force` to recreate the configuration file.",
        ],
        "TimeoutError": [
            "• A download timed out, which may indicate network throttling.",
            "• Try reducing `max_workers` in the configuration file.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
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


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    console.print(
        Panel(
            content,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: SyncConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Chunk Workers:", str(config.max_workers))
    table.add_row("Item Workers:", str(config.item_workers))
    table.add_row("Max Retries:", str(config.max_retries))
    table.add_row("Chunk Size:", format_size(config.chunk_size))
    table.add_row("Retry Delay:", f"{config.retry_base_delay:g}s x attempt")
    table.add_row("Instances:", f"[dim]{config.instances_dir}[/dim]")
    table.add_row("Runtimes:", f"[dim]{config.runtime_dir}[/dim]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_summary_panel(stats: ProvisionStats, duration_s: float):
    """Displays the final summary of a provisioning request."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{stats.files_downloaded}[/bold green]"
    )
    if stats.files_skipped_exists > 0:
        stats_table.add_row(
            "○ Already Present:", f"[yellow]{stats.files_skipped_exists}[/yellow]"
        )
    if stats.archive_extracted:
        stats_table.add_row("Installed:", f"[green]{stats.files_installed}[/green]")
        if stats.settings_preserved > 0:
            stats_table.add_row(
                "Settings Kept:", f"[cyan]{stats.settings_preserved}[/cyan]"
            )
        if stats.files_whitelisted > 0:
            stats_table.add_row(
                "Add-ons Kept:", f"[cyan]{stats.files_whitelisted}[/cyan]"
            )
    if stats.files_removed > 0:
        stats_table.add_row("Removed:", f"[magenta]{stats.files_removed}[/magenta]")
    if stats.libraries_repaired > 0:
        stats_table.add_row(
            "Libraries Fixed:", f"[yellow]{stats.libraries_repaired}[/yellow]"
        )
    if stats.patch.corrupt:
        stats_table.add_row(
            "Corrupt Mods:", f"[yellow]{len(stats.patch.corrupt)} re-downloaded[/yellow]"
        )
    if stats.files_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.files_failed}[/bold red]")

    stats_table.add_row("", "")  # Spacer

    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.bytes_downloaded)}[/cyan]"
    )
    avg_speed = stats.bytes_downloaded / duration_s if duration_s > 0 else 0
    stats_table.add_row(
        "Avg. Speed:", f"[magenta]{format_size(int(avg_speed))}/s[/magenta]"
    )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    if stats.files_failed:
        title = f"⚠ [bold]{escape(stats.bundle_id)} ready with failures[/bold]"
        border_color = "yellow"
    else:
        title = f"✓ [bold]{escape(stats.bundle_id)} is up to date[/bold]"
        border_color = "green"
    if stats.repaired:
        title += " [dim](repaired)[/dim]"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    if stats.failed_items:
        console.print("[red]Failed items:[/red]")
        for url in stats.failed_items:
            console.print(f"  [dim]{escape(url)}[/dim]")
    console.print()
