"""Session commands for the storagexfer CLI.

Commands:
- sessions list: Show persisted resumable upload sessions
- sessions discard: Forget the session of one object
"""

from __future__ import annotations

from datetime import datetime

import click

from storagexfer.client.cli.config import get_sessions_db
from storagexfer.client.state import LocalSessionStore
from storagexfer.core.types import ObjectHandle


@click.group()
def sessions() -> None:
    """Manage resumable upload sessions."""


@sessions.command("list")
def list_sessions() -> None:
    """List in-flight resumable uploads."""
    with LocalSessionStore(get_sessions_db()) as store:
        records = store.list_records()

    if not records:
        click.echo("No upload sessions.")
        return

    for record in records:
        started = datetime.fromtimestamp(record.created_at).isoformat(timespec="seconds")
        click.echo(f"{record.key}\t{started}\t{record.uri}")


@sessions.command("discard")
@click.argument("bucket")
@click.argument("name")
def discard(bucket: str, name: str) -> None:
    """Forget the upload session of object NAME in BUCKET.

    The next upload of the object starts from scratch.
    """
    handle = ObjectHandle(bucket, name)
    with LocalSessionStore(get_sessions_db()) as store:
        if store.get(handle.key) is None:
            click.echo(f"No upload session for {handle}.")
            return
        store.delete(handle.key)

    click.echo(f"Discarded upload session for {handle}.")
