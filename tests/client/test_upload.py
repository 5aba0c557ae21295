"""Tests for the upload coordinator."""

from pathlib import Path

import pytest

from storagexfer.client.api import StorageAPI
from storagexfer.client.state import LocalSessionStore
from storagexfer.client.transfer import (
    FILE_NO_UPLOAD,
    FILE_NO_UPLOAD_DELETE,
    TransferProgress,
    UploadCoordinator,
    ValidationMismatch,
)
from storagexfer.core.checksum import compute_digest
from storagexfer.core.config import TransferOptions, UploadStrategy, ValidationMode
from storagexfer.core.types import ObjectHandle, SessionRecord

HANDLE = ObjectHandle("bucket-name", "file.txt")


@pytest.fixture
def coordinator(api: StorageAPI, session_store: LocalSessionStore) -> UploadCoordinator:
    """UploadCoordinator against the fake object store."""
    return UploadCoordinator(api, session_store)


class TestOpenUploadStream:
    """Tests for UploadCoordinator.open_upload_stream."""

    def test_no_request_before_write(self, coordinator, fake_store) -> None:  # type: ignore[no-untyped-def]
        """Opening a stream is free."""
        stream = coordinator.open_upload_stream(HANDLE)

        assert fake_store.requests == []
        stream.abort()
        assert fake_store.requests == []

    def test_resumable_upload(self, coordinator, fake_store, session_store) -> None:  # type: ignore[no-untyped-def]
        """Written bytes end up in the object."""
        with coordinator.open_upload_stream(HANDLE) as stream:
            stream.write(b"hello ")
            stream.write(b"world")

        metadata = stream.result()
        assert metadata.size == 11
        assert metadata.md5_hash == compute_digest(ValidationMode.MD5, b"hello world")
        assert fake_store.data("bucket-name", "file.txt") == b"hello world"
        assert session_store.list_records() == []

    def test_simple_upload(self, coordinator, fake_store) -> None:  # type: ignore[no-untyped-def]
        """Simple uploads use a single multipart request."""
        options = TransferOptions(
            metadata={"metadata": {"owner": "ops"}},
            content_type="text/plain",
            strategy=UploadStrategy.SIMPLE,
        )
        with coordinator.open_upload_stream(HANDLE, options) as stream:
            stream.write(b"test")

        assert stream.result().content_type == "text/plain"
        assert len(fake_store.requests) == 1
        assert fake_store.requests[0].url.params["uploadType"] == "multipart"
        assert fake_store.objects[("bucket-name", "file.txt")]["resource"]["metadata"] == {
            "owner": "ops"
        }

    def test_mismatch_deletes_object(self, coordinator, fake_store) -> None:  # type: ignore[no-untyped-def]
        """Corrupt uploads are removed from the server."""
        fake_store.corrupt_digests = True
        stream = coordinator.open_upload_stream(HANDLE)
        stream.write(b"test")

        with pytest.raises(ValidationMismatch) as exc_info:
            stream.close()

        assert exc_info.value.code == FILE_NO_UPLOAD
        assert ("bucket-name", "file.txt") not in fake_store.objects

    def test_mismatch_delete_fails(self, coordinator, fake_store) -> None:  # type: ignore[no-untyped-def]
        """A failed cleanup delete is reported with its cause."""
        fake_store.corrupt_digests = True
        fake_store.fail_delete = True
        errors: list[Exception] = []
        stream = coordinator.open_upload_stream(HANDLE)
        stream.on_error(errors.append)
        stream.write(b"test")

        with pytest.raises(ValidationMismatch) as exc_info:
            stream.close()

        assert exc_info.value.code == FILE_NO_UPLOAD_DELETE
        assert "Backend Error" in str(exc_info.value)
        assert errors == [exc_info.value]
        assert ("bucket-name", "file.txt") in fake_store.objects


class TestUploadFile:
    """Tests for UploadCoordinator.upload_file."""

    def test_upload_file(self, coordinator, fake_store, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        """Uploads a local file in blocks."""
        source = tmp_path / "data.bin"
        data = bytes(range(256)) * 4096
        source.write_bytes(data)

        metadata = coordinator.upload_file(HANDLE, source)

        assert metadata.size == len(data)
        assert fake_store.data("bucket-name", "file.txt") == data

    def test_missing_file(self, coordinator, fake_store, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        """A missing source fails before any request."""
        with pytest.raises(FileNotFoundError):
            coordinator.upload_file(HANDLE, tmp_path / "missing.bin")

        assert fake_store.requests == []

    def test_progress_callback(self, api, session_store, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        """Progress updates reach the callback."""
        updates: list[TransferProgress] = []
        coordinator = UploadCoordinator(api, session_store, progress_callback=updates.append)
        source = tmp_path / "data.bin"
        source.write_bytes(b"x" * 1000)

        coordinator.upload_file(HANDLE, source)

        assert updates[-1].bytes_transferred == 1000
        assert updates[-1].object_name == "file.txt"


class TestDiscardSession:
    """Tests for UploadCoordinator.discard_session."""

    def test_discard_existing(self, coordinator, session_store) -> None:  # type: ignore[no-untyped-def]
        """Returns True and removes the record."""
        session_store.set(HANDLE.key, SessionRecord(key=HANDLE.key, uri="https://upload/1"))

        assert coordinator.discard_session(HANDLE) is True
        assert session_store.get(HANDLE.key) is None

    def test_discard_missing(self, coordinator) -> None:  # type: ignore[no-untyped-def]
        """Returns False when nothing is stored."""
        assert coordinator.discard_session(HANDLE) is False
