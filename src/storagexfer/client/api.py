"""HTTP client for the object store API.

This module provides:
- StorageAPI: the HTTP exchanges used by the transfer engine
  (upload initiation, resume query/continue, simple upload, metadata
  fetch, delete, media download)
- ObjectMetadata / ResumeStatus: parsed server responses
- APIError and subclasses: HTTP-level failures
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from storagexfer.core.config import StorageConfig
from storagexfer.core.types import ObjectHandle

if TYPE_CHECKING:
    from storagexfer.client.auth import AuthorizedRequestFactory

logger = logging.getLogger(__name__)

# Status code the server uses for "resume incomplete"
RESUME_INCOMPLETE = 308

# Chunk size for streamed media downloads
DOWNLOAD_CHUNK_SIZE = 256 * 1024  # 256 KiB

_RANGE_PATTERN = re.compile(r"^(?:bytes=)?(\d+)-(\d+)$")


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication or authorization failed."""


class NotFoundError(APIError):
    """Resource not found."""


@dataclass
class ObjectMetadata:
    """Object metadata from server."""

    bucket: str
    name: str
    size: int | None = None
    content_type: str | None = None
    media_link: str | None = None
    md5_hash: str | None = None
    crc32c: str | None = None
    generation: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectMetadata:
        """Create from API response dictionary."""
        return cls(
            bucket=data.get("bucket", ""),
            name=data.get("name", ""),
            size=int(data["size"]) if data.get("size") is not None else None,
            content_type=data.get("contentType"),
            media_link=data.get("mediaLink"),
            md5_hash=data.get("md5Hash"),
            crc32c=data.get("crc32c"),
            generation=data.get("generation"),
            raw=dict(data),
        )


@dataclass
class ResumeStatus:
    """Result of a resume-offset query.

    Attributes:
        complete: True if the server already finalized the upload.
        next_byte: Offset the next PUT must start at (0 when complete).
        metadata: Final object metadata when complete.
    """

    complete: bool
    next_byte: int = 0
    metadata: ObjectMetadata | None = None


def parse_range_header(value: str | None) -> int:
    """Get the resume offset from the Range header of a 308 response.

    Accepts "bytes=0-<n>" or "0-<n>". A missing header means the server
    holds no bytes yet.

    Returns:
        The offset right after the last persisted byte.
    """
    if not value:
        return 0
    match = _RANGE_PATTERN.match(value.strip())
    if match is None:
        raise APIError(f"Malformed Range header in resume response: {value!r}")
    return int(match.group(2)) + 1


class StorageAPI:
    """HTTP client for the object store."""

    def __init__(
        self,
        config: StorageConfig,
        authorizer: AuthorizedRequestFactory,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the API client.

        Args:
            config: Endpoint configuration.
            authorizer: Attaches credentials to every request.
            transport: Optional custom transport (tests, emulators).
        """
        self._config = config
        self._authorizer = authorizer
        self._client = httpx.Client(
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
        )

    @property
    def config(self) -> StorageConfig:
        """Endpoint configuration."""
        return self._config

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> StorageAPI:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _send(
        self,
        method: str,
        url: str,
        *,
        stream: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Build, authorize and send a request."""
        request = self._client.build_request(method, url, **kwargs)
        request = self._authorizer.authorize(request)
        logger.debug(f"{method} {request.url}")
        return self._client.send(request, stream=stream)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code in (401, 403):
            raise AuthenticationError(
                _error_detail(response, "Not authorized"), response.status_code
            )
        if response.status_code == 404:
            raise NotFoundError(
                _error_detail(response, "Resource not found"), 404
            )
        if response.status_code >= 400:
            raise APIError(
                _error_detail(response, "Unknown error"), response.status_code
            )
        return response

    # === Object operations ===

    def get_object_metadata(self, handle: ObjectHandle) -> ObjectMetadata:
        """Get object metadata.

        Args:
            handle: Object to look up.

        Returns:
            Object metadata (includes mediaLink and digests).

        Raises:
            NotFoundError: If the object does not exist.
        """
        response = self._handle_response(
            self._send("GET", self._config.object_url(handle))
        )
        return ObjectMetadata.from_dict(response.json())

    def delete_object(self, handle: ObjectHandle) -> None:
        """Delete an object.

        Args:
            handle: Object to delete.
        """
        self._handle_response(self._send("DELETE", self._config.object_url(handle)))

    def media_url(self, metadata: ObjectMetadata, handle: ObjectHandle) -> str:
        """Direct media link of an object, falling back to ?alt=media."""
        if metadata.media_link:
            return metadata.media_link
        return f"{self._config.object_url(handle)}?alt=media"

    def iter_media(
        self,
        url: str,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> Iterator[bytes]:
        """Stream an object's bytes from its media link.

        The request is sent on first iteration; the response is closed
        when the iterator is exhausted or closed.
        """
        response = self._send("GET", url, stream=True)
        try:
            if response.status_code >= 400:
                response.read()
                self._handle_response(response)
            yield from response.iter_bytes(chunk_size)
        finally:
            response.close()

    # === Uploads ===

    def initiate_resumable_upload(
        self,
        handle: ObjectHandle,
        metadata: dict[str, Any],
        content_type: str,
    ) -> str:
        """Negotiate a resumable upload session.

        Args:
            handle: Destination object.
            metadata: Object metadata (JSON body).
            content_type: Declared content type of the payload.

        Returns:
            The resume URI from the Location header.
        """
        response = self._handle_response(
            self._send(
                "POST",
                self._config.upload_endpoint(handle.bucket),
                params={"name": handle.name, "uploadType": "resumable"},
                headers={"X-Upload-Content-Type": content_type},
                json=metadata,
            )
        )
        location = response.headers.get("Location")
        if not location:
            raise APIError(
                "Upload initiation response has no Location header",
                response.status_code,
            )
        return location

    def query_resume_status(self, resume_uri: str) -> ResumeStatus:
        """Ask the server how many bytes of a session it holds.

        Args:
            resume_uri: Session URI.

        Returns:
            ResumeStatus: partial (308) or already complete (2xx).
        """
        response = self._send(
            "PUT",
            resume_uri,
            headers={"Content-Range": "bytes */*", "Content-Length": "0"},
            content=b"",
        )
        if response.status_code == RESUME_INCOMPLETE:
            return ResumeStatus(
                complete=False,
                next_byte=parse_range_header(response.headers.get("Range")),
            )
        self._handle_response(response)
        return ResumeStatus(
            complete=True,
            metadata=ObjectMetadata.from_dict(_json_body(response)),
        )

    def upload_resumable(
        self,
        resume_uri: str,
        offset: int,
        body: Iterable[bytes],
    ) -> ObjectMetadata:
        """Send the remaining bytes of a resumable session.

        The total size is left open ("*") since the body is a stream of
        unknown length.

        Args:
            resume_uri: Session URI.
            offset: First byte position carried by body.
            body: Remaining bytes.

        Returns:
            Final object metadata.
        """
        response = self._handle_response(
            self._send(
                "PUT",
                resume_uri,
                headers={"Content-Range": f"bytes {offset}-*/*"},
                content=body,
            )
        )
        if response.status_code == RESUME_INCOMPLETE:
            raise APIError(
                "Server did not finalize the upload", RESUME_INCOMPLETE
            )
        return ObjectMetadata.from_dict(_json_body(response))

    def upload_simple(
        self,
        handle: ObjectHandle,
        metadata: dict[str, Any],
        content_type: str,
        body: Iterable[bytes],
    ) -> ObjectMetadata:
        """Upload metadata and payload in a single multipart request.

        Args:
            handle: Destination object.
            metadata: Object metadata (JSON part).
            content_type: Content type of the media part.
            body: Payload bytes.

        Returns:
            Final object metadata.
        """
        boundary = uuid.uuid4().hex
        response = self._handle_response(
            self._send(
                "POST",
                self._config.upload_endpoint(handle.bucket),
                params={"name": handle.name, "uploadType": "multipart"},
                headers={
                    "Content-Type": f'multipart/related; boundary="{boundary}"'
                },
                content=_multipart_related(boundary, metadata, content_type, body),
            )
        )
        return ObjectMetadata.from_dict(_json_body(response))


def _multipart_related(
    boundary: str,
    metadata: dict[str, Any],
    content_type: str,
    body: Iterable[bytes],
) -> Iterator[bytes]:
    """Generate a multipart/related body: JSON metadata part, then media."""
    delimiter = f"--{boundary}\r\n".encode()
    yield delimiter
    yield b"Content-Type: application/json; charset=UTF-8\r\n\r\n"
    yield json.dumps(metadata).encode("utf-8")
    yield b"\r\n" + delimiter
    yield f"Content-Type: {content_type}\r\n\r\n".encode()
    yield from body
    yield f"\r\n--{boundary}--\r\n".encode()


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body; empty bodies become {}."""
    if not response.content:
        return {}
    data = response.json()
    return data if isinstance(data, dict) else {}


def _error_detail(response: httpx.Response, default: str) -> str:
    """Extract an error message from a JSON or plain-text error body."""
    try:
        data = response.json()
    except ValueError:
        text = response.text.strip()
        return text or default
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("detail"):
            return str(data["detail"])
    return default
