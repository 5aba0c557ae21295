"""Transfer commands for the storagexfer CLI.

Commands:
- upload: Upload a local file to an object
- download: Download an object to a local file
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from storagexfer.client.api import APIError, StorageAPI
from storagexfer.client.auth import AnonymousFactory, BearerTokenFactory
from storagexfer.client.cli.config import (
    build_storage_config,
    get_sessions_db,
    load_config,
)
from storagexfer.client.state import LocalSessionStore
from storagexfer.client.transfer import (
    DownloadCoordinator,
    StorageError,
    UploadCoordinator,
)
from storagexfer.core.config import TransferOptions, UploadStrategy, ValidationMode
from storagexfer.core.types import ObjectHandle

VALIDATION_CHOICES = [mode.value for mode in ValidationMode]


@contextmanager
def open_api(token: str | None) -> Iterator[StorageAPI]:
    """Create the HTTP client from the config file and token option."""
    config = load_config()
    token = token or config.get("access_token")
    authorizer = BearerTokenFactory(token) if token else AnonymousFactory()
    with StorageAPI(build_storage_config(config), authorizer) as api:
        yield api


def parse_metadata(pairs: tuple[str, ...]) -> dict[str, str]:
    """Parse KEY=VALUE options into a custom metadata mapping."""
    metadata: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got {pair!r}", param_hint="--metadata")
        metadata[key] = value
    return metadata


@click.command()
@click.argument("bucket")
@click.argument("name")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--simple", is_flag=True, help="Single-request upload instead of resumable.")
@click.option(
    "--validation",
    type=click.Choice(VALIDATION_CHOICES),
    default=ValidationMode.MD5.value,
    show_default=True,
    help="Checksum verified after the upload.",
)
@click.option("--content-type", default=None, help="Declared content type.")
@click.option("--metadata", "-m", multiple=True, help="Custom metadata as KEY=VALUE.")
@click.option("--token", envvar="STORAGEXFER_TOKEN", default=None, help="OAuth2 access token.")
def upload(
    bucket: str,
    name: str,
    source: Path,
    simple: bool,
    validation: str,
    content_type: str | None,
    metadata: tuple[str, ...],
    token: str | None,
) -> None:
    """Upload SOURCE to object NAME in BUCKET.

    An interrupted resumable upload continues where it stopped when the
    same command is run again.
    """
    custom = parse_metadata(metadata)
    options = TransferOptions(
        metadata={"metadata": custom} if custom else {},
        content_type=content_type,
        validation=ValidationMode(validation),
        strategy=UploadStrategy.SIMPLE if simple else UploadStrategy.RESUMABLE,
    )
    handle = ObjectHandle(bucket, name)

    with open_api(token) as api, LocalSessionStore(get_sessions_db()) as store:
        coordinator = UploadCoordinator(api, store)
        try:
            result = coordinator.upload_file(handle, source, options)
        except (StorageError, APIError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(f"Uploaded {source} to {handle} ({result.size} bytes)")


@click.command()
@click.argument("bucket")
@click.argument("name")
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--validation",
    type=click.Choice(VALIDATION_CHOICES),
    default=ValidationMode.MD5.value,
    show_default=True,
    help="Checksum verified after the download.",
)
@click.option("--token", envvar="STORAGEXFER_TOKEN", default=None, help="OAuth2 access token.")
def download(
    bucket: str,
    name: str,
    destination: Path,
    validation: str,
    token: str | None,
) -> None:
    """Download object NAME in BUCKET to DESTINATION."""
    handle = ObjectHandle(bucket, name)

    with open_api(token) as api:
        coordinator = DownloadCoordinator(api, validation=validation)
        try:
            coordinator.download_file(handle, destination)
        except (StorageError, APIError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(f"Downloaded {handle} to {destination}")
