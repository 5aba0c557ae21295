"""Transfer engine.

Architecture:
    UploadCoordinator / DownloadCoordinator → stream adapters → TransferSession → StorageAPI

Components:
- **UploadCoordinator**: picks simple or resumable sessions, returns an UploadStream
- **DownloadCoordinator**: metadata fetch, then streamed media read
- **UploadStream / DownloadStream**: caller-facing byte streams
- **TransferSession**: NEGOTIATING → SENDING → VERIFYING → DONE (or FAILED)
"""

from storagexfer.client.transfer.download import DownloadCoordinator
from storagexfer.client.transfer.session import (
    InvalidTransitionError,
    ResumableUploadSession,
    SimpleUploadSession,
    TransferSession,
    next_phase,
)
from storagexfer.client.transfer.stream import DownloadStream, UploadStream
from storagexfer.client.transfer.types import (
    CONTENT_DOWNLOAD_MISMATCH,
    FILE_NO_UPLOAD,
    FILE_NO_UPLOAD_DELETE,
    NegotiationError,
    ProgressCallback,
    StorageError,
    TransferError,
    TransferEvent,
    TransferPhase,
    TransferProgress,
    UploadAbortedError,
    ValidationMismatch,
)
from storagexfer.client.transfer.upload import UploadCoordinator

__all__ = [
    "CONTENT_DOWNLOAD_MISMATCH",
    "DownloadCoordinator",
    "DownloadStream",
    "FILE_NO_UPLOAD",
    "FILE_NO_UPLOAD_DELETE",
    "InvalidTransitionError",
    "NegotiationError",
    "ProgressCallback",
    "ResumableUploadSession",
    "SimpleUploadSession",
    "StorageError",
    "TransferError",
    "TransferEvent",
    "TransferPhase",
    "TransferProgress",
    "TransferSession",
    "UploadAbortedError",
    "UploadCoordinator",
    "UploadStream",
    "ValidationMismatch",
    "next_phase",
]
