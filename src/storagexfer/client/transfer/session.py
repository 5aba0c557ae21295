"""Transfer sessions: the upload state machine.

This module provides:
- next_phase: the pure (phase, event) -> phase transition function
- TransferSession: shared sending/verifying logic
- ResumableUploadSession: negotiates, resumes and finalizes a session URI
- SimpleUploadSession: one multipart request, no negotiation

Phases:
    NEGOTIATING -> SENDING -> VERIFYING -> DONE
    any non-DONE phase -> FAILED

A session runs once, on a single thread, as a linear sequence of HTTP
exchanges. Bytes arrive through an iterable supplied by the caller
(normally an UploadStream) and are hashed as they are forwarded.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

import httpx

from storagexfer.client.api import APIError, ObjectMetadata, ResumeStatus
from storagexfer.client.transfer.types import (
    FILE_NO_UPLOAD,
    FILE_NO_UPLOAD_DELETE,
    NegotiationError,
    ProgressCallback,
    TransferError,
    TransferEvent,
    TransferPhase,
    TransferProgress,
    ValidationMismatch,
)
from storagexfer.core.checksum import SERVER_DIGEST_FIELDS, ChecksumValidator
from storagexfer.core.config import TransferOptions, ValidationMode
from storagexfer.core.types import ObjectHandle, SessionRecord

if TYPE_CHECKING:
    from storagexfer.client.api import StorageAPI
    from storagexfer.client.state import SessionStore

logger = logging.getLogger(__name__)

# Status codes meaning the server has forgotten a resumable session
EXPIRED_SESSION_STATUSES = (404, 410)

MISMATCH_DELETED_MESSAGE = (
    "The uploaded data did not match the data from the server. The object "
    "has been deleted as a precaution. Upload the data again."
)
MISMATCH_DELETE_FAILED_MESSAGE = (
    "The uploaded data did not match the data from the server. Deleting the "
    "object as a precaution failed, so a corrupt copy may still exist. Remove "
    "it manually, then upload the data again.\n\n"
    "The delete attempt failed with: {error}"
)

_TRANSITIONS: dict[tuple[TransferPhase, TransferEvent], TransferPhase] = {
    (TransferPhase.NEGOTIATING, TransferEvent.SESSION_READY): TransferPhase.SENDING,
    (TransferPhase.SENDING, TransferEvent.BYTES_COMMITTED): TransferPhase.VERIFYING,
    (TransferPhase.VERIFYING, TransferEvent.DIGEST_VERIFIED): TransferPhase.DONE,
}


class InvalidTransitionError(RuntimeError):
    """An event arrived that the current phase does not accept."""


def next_phase(phase: TransferPhase, event: TransferEvent) -> TransferPhase:
    """Compute the phase that follows an event.

    Args:
        phase: Current phase.
        event: Incoming event.

    Returns:
        The next phase.

    Raises:
        InvalidTransitionError: If the phase does not accept the event.
    """
    if event is TransferEvent.FAILURE:
        if phase is TransferPhase.DONE:
            raise InvalidTransitionError("A completed transfer cannot fail")
        return TransferPhase.FAILED
    try:
        return _TRANSITIONS[(phase, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"No transition from {phase.name} on {event.name}"
        ) from None


class TransferSession(ABC):
    """State machine owning one upload attempt.

    Subclasses implement _transfer(), which carries the session from its
    initial phase to VERIFYING and returns the server's final metadata.
    """

    initial_phase = TransferPhase.NEGOTIATING

    def __init__(
        self,
        api: StorageAPI,
        handle: ObjectHandle,
        options: TransferOptions,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            api: HTTP client for server communication.
            handle: Destination object.
            options: Upload options (metadata, validation, strategy).
            progress_callback: Optional callback for progress updates.
        """
        self._api = api
        self._progress_callback = progress_callback
        self.handle = handle
        self.options = options
        self.phase = self.initial_phase
        self.validator = ChecksumValidator(options.validation)
        self.bytes_confirmed: int | None = 0
        self.bytes_sent = 0
        self.metadata: ObjectMetadata | None = None

    def run(self, chunks: Iterable[bytes]) -> ObjectMetadata:
        """Carry the upload through to DONE or FAILED.

        Args:
            chunks: The payload, from byte 0.

        Returns:
            Final object metadata.

        Raises:
            NegotiationError: If the session could not be started.
            TransferError: If the transfer failed mid-way.
            ValidationMismatch: If checksums disagree after the transfer.
        """
        if self.phase is not self.initial_phase:
            raise InvalidTransitionError(f"Session for {self.handle} already ran")

        try:
            metadata = self._transfer(chunks)
            self._verify(metadata)
            self._release()
        except Exception as e:
            self._dispatch(TransferEvent.FAILURE)
            logger.warning(f"Upload of {self.handle} failed: {e}")
            raise

        self._dispatch(TransferEvent.DIGEST_VERIFIED)
        logger.info(
            f"Uploaded {self.handle}: {self.validator.bytes_hashed} bytes "
            f"({self.options.strategy.value})"
        )
        return metadata

    def cancel(self) -> None:
        """Fail a session that never started (no network effect)."""
        if not self.phase.is_terminal:
            self._dispatch(TransferEvent.FAILURE)

    @abstractmethod
    def _transfer(self, chunks: Iterable[bytes]) -> ObjectMetadata:
        """Carry the session to VERIFYING and return the final metadata."""
        ...

    def _release(self) -> None:
        """Drop any persisted state once the upload is verified."""

    def _dispatch(self, event: TransferEvent) -> None:
        previous = self.phase
        self.phase = next_phase(previous, event)
        logger.debug(f"{self.handle}: {previous.name} -> {self.phase.name} ({event.name})")

    def _forward(self, chunks: Iterable[bytes], skip: int = 0) -> Iterator[bytes]:
        """Hash every chunk, drop the first `skip` bytes, yield the rest."""
        remaining = skip
        for chunk in chunks:
            if not chunk:
                continue
            self.validator.update(chunk)
            if remaining:
                if len(chunk) <= remaining:
                    remaining -= len(chunk)
                    continue
                chunk = chunk[remaining:]
                remaining = 0
            self.bytes_sent += len(chunk)
            if self._progress_callback:
                self._progress_callback(TransferProgress(
                    object_name=self.handle.name,
                    bytes_transferred=skip + self.bytes_sent,
                    operation="upload",
                ))
            yield chunk

        if remaining:
            raise TransferError(
                f"Source for {self.handle} ended after {skip - remaining} bytes, "
                f"but the server already holds {skip}"
            )

    def _verify(self, metadata: ObjectMetadata) -> None:
        """Compare digests; on mismatch delete the object and raise."""
        self.metadata = metadata
        if self.validator.matches_metadata(metadata.raw):
            return

        mode = self.validator.mode
        local_digest = self.validator.digest()
        server_digest = metadata.raw.get(SERVER_DIGEST_FIELDS[mode]) if mode is not ValidationMode.NONE else None
        logger.warning(
            f"Checksum mismatch for {self.handle} ({mode.value}): "
            f"local {local_digest}, server {server_digest}"
        )
        self._on_mismatch()

        try:
            self._api.delete_object(self.handle)
        except (APIError, httpx.HTTPError) as e:
            logger.warning(f"Could not delete mismatched object {self.handle}: {e}")
            raise ValidationMismatch(
                MISMATCH_DELETE_FAILED_MESSAGE.format(error=e),
                FILE_NO_UPLOAD_DELETE,
                mode=mode,
                local_digest=local_digest,
                server_digest=server_digest,
                delete_error=e,
            ) from e

        raise ValidationMismatch(
            MISMATCH_DELETED_MESSAGE,
            FILE_NO_UPLOAD,
            mode=mode,
            local_digest=local_digest,
            server_digest=server_digest,
        )

    def _on_mismatch(self) -> None:
        """Hook run before the cleanup delete of a mismatched object."""


class ResumableUploadSession(TransferSession):
    """Upload through a negotiated, resumable session URI.

    The resume URI is persisted in the SessionStore as soon as it is
    negotiated, so a later attempt for the same object queries the
    server for its offset instead of starting over.
    """

    def __init__(
        self,
        api: StorageAPI,
        store: SessionStore,
        handle: ObjectHandle,
        options: TransferOptions,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        super().__init__(api, handle, options, progress_callback)
        self._store = store
        self.resume_uri: str | None = None
        self.resumed = False

    def _transfer(self, chunks: Iterable[bytes]) -> ObjectMetadata:
        resume_uri = self._negotiate()

        if self.bytes_confirmed is None:
            status = self._query_offset(resume_uri)
            if status.complete:
                # Finished server-side on a previous attempt: hash only
                logger.info(f"Upload of {self.handle} already complete on server")
                for chunk in chunks:
                    self.validator.update(chunk)
                self._dispatch(TransferEvent.BYTES_COMMITTED)
                return status.metadata or ObjectMetadata.from_dict({})
            self.bytes_confirmed = status.next_byte
            logger.info(f"Resuming {self.handle} at byte {self.bytes_confirmed}")

        offset = self.bytes_confirmed
        try:
            metadata = self._api.upload_resumable(
                resume_uri,
                offset,
                self._forward(chunks, skip=offset),
            )
        except (APIError, httpx.HTTPError) as e:
            raise TransferError(
                f"Upload of {self.handle} failed after byte "
                f"{offset + self.bytes_sent}: {e}"
            ) from e

        self._dispatch(TransferEvent.BYTES_COMMITTED)
        return metadata

    def _negotiate(self) -> str:
        """Restore the session from the store, or start a new one.

        Returns:
            The resume URI.
        """
        key = self.handle.key
        record = self._store.get(key)

        if record is not None:
            uri = record.uri
            self.bytes_confirmed = None  # Unknown until queried
            self.resumed = True
            logger.info(f"Found upload session for {self.handle}")
        else:
            try:
                uri = self._api.initiate_resumable_upload(
                    self.handle,
                    self.options.request_metadata(),
                    self.options.effective_content_type,
                )
            except (APIError, httpx.HTTPError) as e:
                raise NegotiationError(
                    f"Could not start upload of {self.handle}: {e}"
                ) from e
            self._store.set(key, SessionRecord(key=key, uri=uri))
            self.bytes_confirmed = 0
            logger.info(f"Negotiated upload session for {self.handle}")

        self.resume_uri = uri
        self._dispatch(TransferEvent.SESSION_READY)
        return uri

    def _query_offset(self, resume_uri: str) -> ResumeStatus:
        """Ask the server where to resume."""
        try:
            return self._api.query_resume_status(resume_uri)
        except APIError as e:
            if e.status_code in EXPIRED_SESSION_STATUSES:
                self._store.delete(self.handle.key)
                logger.warning(f"Upload session for {self.handle} expired, discarded")
            raise TransferError(
                f"Could not query upload session for {self.handle}: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise TransferError(
                f"Could not query upload session for {self.handle}: {e}"
            ) from e

    def _release(self) -> None:
        self._store.delete(self.handle.key)

    def _on_mismatch(self) -> None:
        # The session URI is finalized, resuming it would be meaningless
        self._store.delete(self.handle.key)


class SimpleUploadSession(TransferSession):
    """Upload metadata and payload in a single request."""

    initial_phase = TransferPhase.SENDING

    def _transfer(self, chunks: Iterable[bytes]) -> ObjectMetadata:
        try:
            metadata = self._api.upload_simple(
                self.handle,
                self.options.request_metadata(),
                self.options.effective_content_type,
                self._forward(chunks),
            )
        except (APIError, httpx.HTTPError) as e:
            raise TransferError(f"Upload of {self.handle} failed: {e}") from e

        self._dispatch(TransferEvent.BYTES_COMMITTED)
        return metadata
