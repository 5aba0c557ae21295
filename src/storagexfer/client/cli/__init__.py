"""Command-line interface for storagexfer.

This module provides the main CLI entry point and assembles all commands.

Commands:
- upload: Upload a local file (resumable by default)
- download: Download an object to a local file
- sessions list: Show persisted resumable upload sessions
- sessions discard: Forget the session of one object
"""

from __future__ import annotations

import click

from storagexfer.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_sessions_db,
    load_config,
    save_config,
    setup_logging,
)
from storagexfer.client.cli.sessions import sessions
from storagexfer.client.cli.transfer import download, upload


@click.group()
@click.version_option(package_name="storagexfer")
@click.option("--verbose", "-v", is_flag=True, help="Log request-level detail.")
def cli(verbose: bool) -> None:
    """storagexfer - Resumable object-storage transfers."""
    setup_logging(verbose)


# Transfer commands
cli.add_command(upload)
cli.add_command(download)

# Session commands
cli.add_command(sessions)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "get_sessions_db",
    "load_config",
    "save_config",
]
