"""Upload entry point.

This module provides:
- UploadCoordinator: opens upload streams, picking simple or resumable
  sessions, plus file and session-management helpers
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from storagexfer.client.transfer.session import (
    ResumableUploadSession,
    SimpleUploadSession,
    TransferSession,
)
from storagexfer.client.transfer.stream import UploadStream
from storagexfer.core.checksum import READ_BLOCK_SIZE
from storagexfer.core.config import TransferOptions, UploadStrategy

if TYPE_CHECKING:
    from storagexfer.client.api import ObjectMetadata, StorageAPI
    from storagexfer.client.state import SessionStore
    from storagexfer.client.transfer.types import ProgressCallback
    from storagexfer.core.types import ObjectHandle

logger = logging.getLogger(__name__)


class UploadCoordinator:
    """Public entry point for uploads.

    Example:
        coordinator = UploadCoordinator(api, LocalSessionStore(db_path))
        with coordinator.open_upload_stream(handle) as stream:
            for block in source:
                stream.write(block)
        metadata = stream.result()

    Callers must not run two uploads for the same object at once: the
    session store holds at most one session per object.
    """

    def __init__(
        self,
        api: StorageAPI,
        store: SessionStore,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            api: HTTP client for server communication.
            store: Persistent resumable-session store.
            progress_callback: Optional callback for progress updates.
        """
        self._api = api
        self._store = store
        self._progress_callback = progress_callback

    def open_upload_stream(
        self,
        handle: ObjectHandle,
        options: TransferOptions | None = None,
    ) -> UploadStream:
        """Open a writable stream to an object.

        Returns immediately; no request is made before the first write.

        Args:
            handle: Destination object.
            options: Upload options (defaults: resumable, md5 validation).

        Returns:
            The upload stream.
        """
        options = options or TransferOptions()
        session = self._create_session(handle, options)
        logger.debug(
            f"Opening {options.strategy.value} upload stream for {handle} "
            f"(validation: {options.validation.value})"
        )
        return UploadStream(session)

    def upload_file(
        self,
        handle: ObjectHandle,
        path: Path,
        options: TransferOptions | None = None,
    ) -> ObjectMetadata:
        """Upload a local file.

        Re-running after a failure resumes a resumable upload where the
        server left off.

        Args:
            handle: Destination object.
            path: Local file to upload.
            options: Upload options.

        Returns:
            Final object metadata.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        logger.info(f"Uploading {path} to {handle}")
        stream = self.open_upload_stream(handle, options)
        with stream, open(path, "rb") as f:
            for block in iter(lambda: f.read(READ_BLOCK_SIZE), b""):
                stream.write(block)
        return stream.result()

    def discard_session(self, handle: ObjectHandle) -> bool:
        """Forget the persisted resumable session for an object.

        The next upload of the object negotiates a fresh session.

        Returns:
            True if a session was discarded.
        """
        if self._store.get(handle.key) is None:
            return False
        self._store.delete(handle.key)
        logger.info(f"Discarded upload session for {handle}")
        return True

    def _create_session(
        self,
        handle: ObjectHandle,
        options: TransferOptions,
    ) -> TransferSession:
        if options.strategy is UploadStrategy.SIMPLE:
            return SimpleUploadSession(
                self._api, handle, options, self._progress_callback
            )
        return ResumableUploadSession(
            self._api, self._store, handle, options, self._progress_callback
        )
