"""Shared types for transfer operations.

This module provides:
- StorageError and subclasses: transfer-level failures with error codes
- TransferPhase / TransferEvent: state machine vocabulary
- TransferProgress: progress reporting dataclass
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum, auto

from storagexfer.core.config import ValidationMode


class StorageError(Exception):
    """Base exception for transfer errors.

    Attributes:
        code: Stable, machine-readable error code.
    """

    code = "STORAGE_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class NegotiationError(StorageError):
    """Upload session initiation failed. No resume state was persisted."""

    code = "NEGOTIATION_FAILED"


class TransferError(StorageError):
    """Network failure while bytes were moving.

    Fatal for the current attempt. A resumable upload can be retried and
    will continue from the persisted session.
    """

    code = "TRANSFER_FAILED"


class UploadAbortedError(TransferError):
    """The caller aborted the upload stream before the end of data."""

    code = "UPLOAD_ABORTED"


# Validation error codes
FILE_NO_UPLOAD = "FILE_NO_UPLOAD"
FILE_NO_UPLOAD_DELETE = "FILE_NO_UPLOAD_DELETE"
CONTENT_DOWNLOAD_MISMATCH = "CONTENT_DOWNLOAD_MISMATCH"


class ValidationMismatch(StorageError):
    """Local and server checksums disagree after a completed transfer.

    Attributes:
        mode: Checksum algorithm that was compared.
        local_digest: Digest of the bytes actually written/read.
        server_digest: Digest reported by the server.
        delete_error: Failure of the cleanup delete (FILE_NO_UPLOAD_DELETE only).
    """

    def __init__(
        self,
        message: str,
        code: str,
        mode: ValidationMode,
        local_digest: str | None,
        server_digest: str | None,
        delete_error: Exception | None = None,
    ) -> None:
        super().__init__(message, code)
        self.mode = mode
        self.local_digest = local_digest
        self.server_digest = server_digest
        self.delete_error = delete_error


class TransferPhase(IntEnum):
    """Phase of a transfer session."""

    NEGOTIATING = auto()
    SENDING = auto()
    VERIFYING = auto()
    DONE = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in (TransferPhase.DONE, TransferPhase.FAILED)


class TransferEvent(IntEnum):
    """Events driving a transfer session from one phase to the next."""

    SESSION_READY = auto()  # Resume URI known (negotiated or restored)
    BYTES_COMMITTED = auto()  # Server returned final object metadata
    DIGEST_VERIFIED = auto()  # Checksums match (or validation disabled)
    FAILURE = auto()  # Any error


@dataclass
class TransferProgress:
    """Progress information for a transfer."""

    object_name: str
    bytes_transferred: int
    operation: str  # "upload" or "download"


# Type alias for progress callback
ProgressCallback = Callable[[TransferProgress], None]
