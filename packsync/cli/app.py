"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from packsync import __version__
from packsync.core.cleanup import cleanup_folder
from packsync.core.provisioner import BundleProvisioner
from packsync.exceptions import PackSyncError
from packsync.models.bundle import ManagedBundle
from packsync.models.config import SyncConfig
from packsync.storage.config_manager import (
    CONFIG_FILE_NAME,
    ConfigManager,
    default_config_dir,
)

from .formatters import print_config, print_summary_panel, print_validation_table
from .progress_manager import RichProgressSink

console = Console()

logging.basicConfig(
    level="WARNING",
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
log = logging.getLogger("packsync")

app = typer.Typer(
    name="packsync",
    help=(
        "Provision and repair game instance directories from remote content "
        "bundles. Use 'packsync <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

CONFIG_DIR = default_config_dir()
CONFIG_FILE = CONFIG_DIR / CONFIG_FILE_NAME


def _load_config(**cli_options) -> SyncConfig:
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


def _cancel_on_interrupt(provisioner: BundleProvisioner) -> None:
    """Turns Ctrl+C into a cooperative cancellation of the running request."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(
            signal.SIGINT, provisioner.cancel, "Interrupted by user"
        )
    except (NotImplementedError, RuntimeError):
        log.debug("Signal handlers are not supported here; Ctrl+C stops immediately.")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Game instance provisioning CLI"""
    if version:
        console.print(f"[bold]packsync[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("packsync").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]packsync init[/cyan] first."
            )
            raise typer.Exit(code=1)
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    instances_dir: Path | None = typer.Option(
        None, "--instances-dir", help="Where instance directories are created."
    ),
    runtime_dir: Path | None = typer.Option(
        None, "--runtime-dir", help="Where Java runtimes are installed."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Parallel chunk downloads (default 5)."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        key: str(value)
        for key, value in {
            "instances_dir": instances_dir,
            "runtime_dir": runtime_dir,
            "max_workers": workers,
        }.items()
        if value is not None
    }
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready! Try: [cyan]packsync provision <bundle.json>[/cyan]")


@app.command()
def provision(
    bundle_file: Path = typer.Argument(  # noqa: B008
        ...,
        exists=True,
        dir_okay=False,
        help="Path to a JSON bundle descriptor.",
    ),
    repair: bool = typer.Option(
        False,
        "--repair",
        help="Discard the cached archive and clean the mods folder first.",
    ),
    root: Path | None = typer.Option(
        None, "--root", help="Instance directory (default: <instances_dir>/<id>)."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Parallel chunk downloads."
    ),
    item_workers: int | None = typer.Option(
        None, "--item-workers", help="Parallel mod downloads."
    ),
):
    """Download, extract and reconcile a bundle into its instance directory."""
    config = _load_config(max_workers=workers, item_workers=item_workers)
    bundle = ManagedBundle.from_file(bundle_file)

    async def _provision_async():
        async with (
            RichProgressSink(console) as sink,
            BundleProvisioner(config, sink) as provisioner,
        ):
            _cancel_on_interrupt(provisioner)
            console.print(
                f"[bold cyan]📦 Provisioning {escape(bundle.id)}...[/bold cyan]"
            )
            return await provisioner.provision(bundle, repair=repair, root=root)

    stats = asyncio.run(_provision_async())
    print_summary_panel(stats, stats.elapsed)


@app.command()
def runtime(
    game_version: str = typer.Argument(..., help="Game version, e.g. 1.20.1."),
):
    """Install (or locate) the Java runtime a game version needs."""
    config = _load_config()

    async def _runtime_async():
        async with (
            RichProgressSink(console) as sink,
            BundleProvisioner(config, sink) as provisioner,
        ):
            _cancel_on_interrupt(provisioner)
            return await provisioner.ensure_runtime(game_version)

    executable = asyncio.run(_runtime_async())
    console.print(f"[green]✓ Java executable:[/green] {executable}")


@app.command()
def cleanup(
    folder: Path = typer.Argument(  # noqa: B008
        ..., exists=True, file_okay=False, help="Folder to clean."
    ),
    keep: list[str] = typer.Option(  # noqa: B008
        [], "--keep", "-k", help="Entry name to keep (repeatable)."
    ),
    protect: list[str] = typer.Option(  # noqa: B008
        [], "--protect", help="Extra name fragment that is never deleted."
    ),
):
    """Delete entries of a folder that are neither kept nor protected."""
    removed = cleanup_folder(folder, set(keep), protect)
    if removed:
        console.print(f"[green]✓ Removed {len(removed)} entries.[/green]")
    else:
        console.print("[dim]Nothing to remove.[/dim]")


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config = _load_config()
        print_validation_table(config)
    except PackSyncError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
