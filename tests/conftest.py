"""Shared pytest fixtures.

This module provides an in-memory object store speaking the upload,
metadata and media endpoints over httpx.MockTransport, for tests that
run whole transfers without a network.
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
import uuid
from collections.abc import Generator, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

import google_crc32c
import httpx
import pytest

from storagexfer.client.api import StorageAPI
from storagexfer.client.auth import BearerTokenFactory
from storagexfer.client.state import LocalSessionStore
from storagexfer.core.config import StorageConfig

TOKEN = "test-token"
API_URL = "https://storage.test/storage/v1"
UPLOAD_URL = "https://storage.test/upload/storage/v1"
SESSION_URL = "https://storage.test/upload/session"
MEDIA_URL = "https://storage.test/download/storage/v1"

_CONTENT_RANGE = re.compile(r"^bytes (\d+)-\*/\*$")


def b64_md5(data: bytes) -> str:
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def b64_crc32c(data: bytes) -> str:
    return base64.b64encode(google_crc32c.Checksum(data).digest()).decode("ascii")


def _error(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(
        status_code, json={"error": {"code": status_code, "message": message}}
    )


@dataclass
class FakeUploadSession:
    """Server side of one resumable upload."""

    bucket: str
    name: str
    metadata: dict[str, Any]
    data: bytearray = field(default_factory=bytearray)
    complete: bool = False


class FakeObjectStore:
    """In-memory object store behind an httpx.MockTransport.

    Knobs:
        interrupt_after: Drop the connection of the next upload PUT after
            this many body bytes were persisted.
        corrupt_digests: Report digests that match no uploaded data.
        fail_delete: Answer object deletes with a 503.
        drop_media_after: Drop the connection of the next media response
            after this many bytes were sent.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.sessions: dict[str, FakeUploadSession] = {}
        self.requests: list[httpx.Request] = []
        self.interrupt_after: int | None = None
        self.corrupt_digests = False
        self.fail_delete = False
        self.drop_media_after: int | None = None
        self._generation = 0

    def put_object(
        self,
        bucket: str,
        name: str,
        data: bytes,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Store an object directly, as if uploaded earlier."""
        self._generation += 1
        metadata = metadata or {}
        digest_source = b"corrupt" if self.corrupt_digests else data
        resource = {
            "bucket": bucket,
            "name": name,
            "size": str(len(data)),
            "contentType": metadata.get("contentType", "application/octet-stream"),
            "md5Hash": b64_md5(digest_source),
            "crc32c": b64_crc32c(digest_source),
            "mediaLink": (
                f"{MEDIA_URL}/b/{quote(bucket, safe='')}/o/"
                f"{quote(name, safe='')}?alt=media"
            ),
            "generation": str(self._generation),
        }
        if metadata.get("metadata"):
            resource["metadata"] = metadata["metadata"]
        self.objects[(bucket, name)] = {"data": bytes(data), "resource": resource}
        return resource

    def data(self, bucket: str, name: str) -> bytes:
        return bytes(self.objects[(bucket, name)]["data"])

    def requests_to(self, method: str, prefix: str) -> list[httpx.Request]:
        """Recorded requests with the given method whose URL starts with prefix."""
        return [
            r for r in self.requests
            if r.method == method and str(r.url).startswith(prefix)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return _error(401, "Invalid Credentials")

        path = request.url.raw_path.split(b"?")[0].decode("ascii")
        parts = path.split("/")

        if path.startswith("/upload/session/"):
            return self._handle_session(request, parts[-1])
        if path.startswith("/upload/storage/v1/b/") and request.method == "POST":
            return self._handle_upload(request, unquote(parts[5]))
        if path.startswith("/download/storage/v1/b/"):
            return self._handle_media(request, unquote(parts[5]), unquote(parts[7]))
        if path.startswith("/storage/v1/b/"):
            bucket, name = unquote(parts[4]), unquote(parts[6])
            if request.method == "DELETE":
                return self._handle_delete(bucket, name)
            if request.url.params.get("alt") == "media":
                return self._handle_media(request, bucket, name)
            return self._handle_metadata(bucket, name)
        return _error(404, f"Unknown endpoint {path}")

    def _handle_upload(self, request: httpx.Request, bucket: str) -> httpx.Response:
        name = request.url.params.get("name", "")
        upload_type = request.url.params.get("uploadType")
        body = request.read()

        if upload_type == "resumable":
            session_id = uuid.uuid4().hex
            self.sessions[session_id] = FakeUploadSession(
                bucket=bucket, name=name, metadata=json.loads(body)
            )
            return httpx.Response(
                200, headers={"Location": f"{SESSION_URL}/{session_id}"}
            )

        if upload_type == "multipart":
            match = re.search(r'boundary="?([^";]+)"?', request.headers["Content-Type"])
            assert match is not None
            metadata, media = _parse_multipart(body, match.group(1))
            return httpx.Response(200, json=self.put_object(bucket, name, media, metadata))

        return _error(400, f"Unsupported uploadType {upload_type}")

    def _handle_session(self, request: httpx.Request, session_id: str) -> httpx.Response:
        session = self.sessions.get(session_id)
        if session is None:
            return _error(404, "No such upload session")

        body = request.read()
        content_range = request.headers.get("Content-Range", "")

        if content_range == "bytes */*":
            if session.complete:
                key = (session.bucket, session.name)
                return httpx.Response(200, json=self.objects[key]["resource"])
            headers = {}
            if session.data:
                headers["Range"] = f"bytes=0-{len(session.data) - 1}"
            return httpx.Response(308, headers=headers)

        match = _CONTENT_RANGE.match(content_range)
        if match is None or int(match.group(1)) != len(session.data):
            return _error(400, f"Invalid Content-Range {content_range!r}")

        if self.interrupt_after is not None:
            session.data += body[: self.interrupt_after]
            self.interrupt_after = None
            raise httpx.ReadError("Connection reset by peer", request=request)

        session.data += body
        session.complete = True
        resource = self.put_object(
            session.bucket, session.name, bytes(session.data), session.metadata
        )
        return httpx.Response(200, json=resource)

    def _handle_metadata(self, bucket: str, name: str) -> httpx.Response:
        stored = self.objects.get((bucket, name))
        if stored is None:
            return _error(404, f"No such object: {bucket}/{name}")
        return httpx.Response(200, json=stored["resource"])

    def _handle_media(
        self, request: httpx.Request, bucket: str, name: str
    ) -> httpx.Response:
        stored = self.objects.get((bucket, name))
        if stored is None:
            return _error(404, f"No such object: {bucket}/{name}")

        if self.drop_media_after is not None:
            sent, self.drop_media_after = self.drop_media_after, None

            def body() -> Iterator[bytes]:
                yield stored["data"][:sent]
                raise httpx.ReadError("Connection reset by peer", request=request)

            return httpx.Response(200, content=body())
        return httpx.Response(200, content=stored["data"])

    def _handle_delete(self, bucket: str, name: str) -> httpx.Response:
        if self.fail_delete:
            return _error(503, "Backend Error")
        if self.objects.pop((bucket, name), None) is None:
            return _error(404, f"No such object: {bucket}/{name}")
        return httpx.Response(204)


def _parse_multipart(body: bytes, boundary: str) -> tuple[dict[str, Any], bytes]:
    """Split a multipart/related body into its JSON and media parts."""
    sections = body.split(b"--" + boundary.encode())
    payloads = []
    for section in sections[1:-1]:
        _, _, payload = section.partition(b"\r\n\r\n")
        payloads.append(payload[:-2] if payload.endswith(b"\r\n") else payload)
    metadata, media = payloads
    return json.loads(metadata), media


@pytest.fixture
def fake_store() -> FakeObjectStore:
    """In-memory object store."""
    return FakeObjectStore()


@pytest.fixture
def storage_config() -> StorageConfig:
    """Endpoints pointing at the fake object store."""
    return StorageConfig(api_url=API_URL, upload_url=UPLOAD_URL)


@pytest.fixture
def api(
    fake_store: FakeObjectStore, storage_config: StorageConfig
) -> Generator[StorageAPI, None, None]:
    """StorageAPI wired to the fake object store."""
    with StorageAPI(
        storage_config,
        BearerTokenFactory(TOKEN),
        transport=httpx.MockTransport(fake_store.handler),
    ) as client:
        yield client


@pytest.fixture
def session_store(tmp_path: Path) -> Generator[LocalSessionStore, None, None]:
    """SQLite session store in a temporary directory."""
    with LocalSessionStore(tmp_path / "sessions.db") as store:
        yield store
