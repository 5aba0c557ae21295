"""Shared configuration classes for storagexfer.

This module defines the endpoint configuration used by the HTTP client
and the per-transfer options accepted by the upload coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

from storagexfer.core.types import ObjectHandle

DEFAULT_API_URL = "https://www.googleapis.com/storage/v1"
DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/storage/v1"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ValidationMode(str, Enum):
    """Checksum algorithm used to confirm end-to-end integrity."""

    NONE = "none"
    MD5 = "md5"
    CRC32C = "crc32c"


class UploadStrategy(str, Enum):
    """How an upload is carried to the server."""

    SIMPLE = "simple"  # Single request, metadata + payload
    RESUMABLE = "resumable"  # Negotiated session, survives interruptions


@dataclass
class StorageConfig:
    """Configuration for connecting to the object store.

    Attributes:
        api_url: Base URL of the JSON API (metadata fetch, delete).
        upload_url: Base URL of the upload API.
        timeout: Request timeout in seconds, handed to the HTTP transport.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    api_url: str = DEFAULT_API_URL
    upload_url: str = DEFAULT_UPLOAD_URL
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize base URLs."""
        self.api_url = self.api_url.rstrip("/")
        self.upload_url = self.upload_url.rstrip("/")

    def object_url(self, handle: ObjectHandle) -> str:
        """Get the JSON API URL of an object.

        Both bucket and object name are percent-encoded, including "/".
        """
        bucket = quote(handle.bucket, safe="")
        name = quote(handle.name, safe="")
        return f"{self.api_url}/b/{bucket}/o/{name}"

    def upload_endpoint(self, bucket: str) -> str:
        """Get the upload endpoint for a bucket (object name goes in the query)."""
        return f"{self.upload_url}/b/{quote(bucket, safe='')}/o"

    @property
    def is_secure(self) -> bool:
        """Check if both endpoints use HTTPS."""
        return self.api_url.startswith("https://") and self.upload_url.startswith("https://")


@dataclass(frozen=True)
class TransferOptions:
    """Options for a single upload.

    Attributes:
        metadata: Object metadata sent to the server (JSON body of the
            initiation request, or JSON part of a simple upload).
        content_type: Declared content type. Falls back to
            metadata["contentType"], then application/octet-stream.
        validation: Checksum verified once the transfer completes.
        strategy: Simple or resumable upload.
    """

    metadata: dict[str, Any] = field(default_factory=dict)
    content_type: str | None = None
    validation: ValidationMode = ValidationMode.MD5
    strategy: UploadStrategy = UploadStrategy.RESUMABLE

    def __post_init__(self) -> None:
        """Coerce string values into their enums."""
        object.__setattr__(self, "validation", ValidationMode(self.validation))
        object.__setattr__(self, "strategy", UploadStrategy(self.strategy))

    @property
    def effective_content_type(self) -> str:
        """Content type actually declared to the server."""
        return (
            self.content_type
            or self.metadata.get("contentType")
            or DEFAULT_CONTENT_TYPE
        )

    def request_metadata(self) -> dict[str, Any]:
        """Metadata body sent with the upload.

        An explicit content_type overrides any contentType in metadata. The
        default type is only declared in headers, never added to the body.
        """
        if self.content_type is None:
            return dict(self.metadata)
        return {**self.metadata, "contentType": self.content_type}
