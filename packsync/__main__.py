"""
Main entry point for the packsync application.
This module handles top-level setup, exception handling, and CLI invocation.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from packsync.cli.app import app
from packsync.cli.formatters import format_error_with_suggestions
from packsync.exceptions import Cancelled, PackSyncError


def main() -> None:
    """Main entry point function."""
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    log = logging.getLogger("packsync")
    console = Console()

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError, Cancelled):
        console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
        sys.exit(130)
    except PackSyncError as e:
        console.print()
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        console.print()
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
