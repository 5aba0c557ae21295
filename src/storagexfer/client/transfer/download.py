"""Download entry point.

This module provides:
- DownloadCoordinator: opens readable object streams and downloads files
  with atomic writes
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from storagexfer.client.transfer.stream import DownloadStream
from storagexfer.client.transfer.types import (
    CONTENT_DOWNLOAD_MISMATCH,
    ProgressCallback,
    TransferError,
    TransferProgress,
    ValidationMismatch,
)
from storagexfer.core.checksum import SERVER_DIGEST_FIELDS, ChecksumValidator
from storagexfer.core.config import ValidationMode

if TYPE_CHECKING:
    from storagexfer.client.api import ObjectMetadata, StorageAPI
    from storagexfer.core.types import ObjectHandle

logger = logging.getLogger(__name__)


class DownloadCoordinator:
    """Public entry point for reads."""

    def __init__(
        self,
        api: StorageAPI,
        validation: ValidationMode | str = ValidationMode.MD5,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            api: HTTP client for server communication.
            validation: Checksum verified at end of stream when the server
                reports one.
            progress_callback: Optional callback for progress updates.
        """
        self._api = api
        self._validation = ValidationMode(validation)
        self._progress_callback = progress_callback

    def open_download_stream(self, handle: ObjectHandle) -> DownloadStream:
        """Open a readable stream of an object.

        Nothing is requested until the first read, or until open() is
        called on the stream. The metadata fetch comes first, so a missing
        object fails before any media request. Its error (and any
        authorization error) is raised from that read or open() call and
        passed to on_error callbacks; a caller that never reads nor opens
        the stream hears of neither.

        A network failure while bytes are flowing is raised as TransferError.
        """
        def opener() -> tuple[ObjectMetadata, Iterator[bytes]]:
            metadata = self._api.get_object_metadata(handle)
            return metadata, self._iter_media(handle, metadata)

        return DownloadStream(handle, opener)

    def download_file(self, handle: ObjectHandle, local_path: Path) -> ObjectMetadata:
        """Download an object to a local file with atomic write.

        Bytes go to a temporary (.tmp) sibling which is renamed over the
        target on success, so no partial file is left behind.

        Returns:
            Object metadata.
        """
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = local_path.with_suffix(local_path.suffix + ".tmp")

        logger.info(f"Downloading {handle} to {local_path}")
        try:
            with self.open_download_stream(handle) as stream, open(tmp_path, "wb") as f:
                metadata = stream.open()
                for chunk in stream:
                    f.write(chunk)

            tmp_path.replace(local_path)
        except Exception:
            if tmp_path.exists():
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise

        return metadata

    def _iter_media(
        self,
        handle: ObjectHandle,
        metadata: ObjectMetadata,
    ) -> Iterator[bytes]:
        validator = ChecksumValidator(self._validation)
        received = 0

        try:
            for chunk in self._api.iter_media(self._api.media_url(metadata, handle)):
                validator.update(chunk)
                received += len(chunk)
                if self._progress_callback:
                    self._progress_callback(TransferProgress(
                        object_name=handle.name,
                        bytes_transferred=received,
                        operation="download",
                    ))
                yield chunk
        except httpx.HTTPError as e:
            logger.warning(f"Download of {handle} failed after byte {received}: {e}")
            raise TransferError(
                f"Download of {handle} failed after byte {received}: {e}"
            ) from e

        if self._validation is not ValidationMode.NONE:
            server_digest = metadata.raw.get(SERVER_DIGEST_FIELDS[self._validation])
            if server_digest is not None and not validator.matches(server_digest):
                logger.warning(f"Checksum mismatch downloading {handle}")
                raise ValidationMismatch(
                    f"The downloaded data for {handle} did not match the "
                    "data from the server",
                    CONTENT_DOWNLOAD_MISMATCH,
                    mode=self._validation,
                    local_digest=validator.digest(),
                    server_digest=server_digest,
                )

        logger.info(f"Downloaded {handle}: {received} bytes")
