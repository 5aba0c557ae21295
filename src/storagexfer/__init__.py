"""storagexfer - Resumable object-storage transfer engine."""

from storagexfer.client.api import (
    APIError,
    AuthenticationError,
    NotFoundError,
    ObjectMetadata,
    StorageAPI,
)
from storagexfer.client.auth import (
    AnonymousFactory,
    AuthorizedRequestFactory,
    BearerTokenFactory,
)
from storagexfer.client.state import LocalSessionStore, SessionStore
from storagexfer.client.transfer import (
    DownloadCoordinator,
    DownloadStream,
    NegotiationError,
    StorageError,
    TransferError,
    UploadAbortedError,
    UploadCoordinator,
    UploadStream,
    ValidationMismatch,
)
from storagexfer.core.config import (
    StorageConfig,
    TransferOptions,
    UploadStrategy,
    ValidationMode,
)
from storagexfer.core.types import ObjectHandle, SessionRecord

__version__ = "0.1.0"

__all__ = [
    # HTTP client
    "APIError",
    "AuthenticationError",
    "NotFoundError",
    "ObjectMetadata",
    "StorageAPI",
    # Authorization
    "AnonymousFactory",
    "AuthorizedRequestFactory",
    "BearerTokenFactory",
    # Session store
    "LocalSessionStore",
    "SessionStore",
    # Transfers
    "DownloadCoordinator",
    "DownloadStream",
    "NegotiationError",
    "StorageError",
    "TransferError",
    "UploadAbortedError",
    "UploadCoordinator",
    "UploadStream",
    "ValidationMismatch",
    # Config and types
    "ObjectHandle",
    "SessionRecord",
    "StorageConfig",
    "TransferOptions",
    "UploadStrategy",
    "ValidationMode",
]
