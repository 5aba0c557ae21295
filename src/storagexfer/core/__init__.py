"""Core module - Shared types, configuration and checksums."""

from storagexfer.core.checksum import (
    READ_BLOCK_SIZE,
    ChecksumValidator,
    compute_digest,
    compute_file_digest,
    digests_match,
    normalize_server_digest,
)
from storagexfer.core.config import (
    StorageConfig,
    TransferOptions,
    UploadStrategy,
    ValidationMode,
)
from storagexfer.core.types import ObjectHandle, SessionRecord

__all__ = [
    # Checksums
    "READ_BLOCK_SIZE",
    "ChecksumValidator",
    "compute_digest",
    "compute_file_digest",
    "digests_match",
    "normalize_server_digest",
    # Config
    "StorageConfig",
    "TransferOptions",
    "UploadStrategy",
    "ValidationMode",
    # Types
    "ObjectHandle",
    "SessionRecord",
]
