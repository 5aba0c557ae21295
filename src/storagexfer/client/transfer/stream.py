"""Byte-stream adapters between callers and transfer sessions.

This module provides:
- UploadStream: writable end of an upload, driving a TransferSession on
  a background thread
- DownloadStream: readable object stream, opened lazily on first read

Writes never block on the network: bytes are queued and a worker thread
forwards them as the session's request body. Until the first write (or
close) no request is made.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING

from storagexfer.client.transfer.types import TransferPhase, UploadAbortedError

if TYPE_CHECKING:
    from storagexfer.client.api import ObjectMetadata
    from storagexfer.client.transfer.session import TransferSession
    from storagexfer.core.types import ObjectHandle

logger = logging.getLogger(__name__)

CompleteCallback = Callable[["ObjectMetadata"], None]
ErrorCallback = Callable[[Exception], None]

# Queue marker for end of data (written chunks are never empty)
_EOF = b""


class UploadStream:
    """Writable stream feeding one upload session.

    Usage:
        with coordinator.open_upload_stream(handle) as stream:
            stream.write(b"...")
        metadata = stream.result()

    Leaving the block normally closes the stream (end of data, waits for
    the upload to finish). Leaving it with an exception aborts instead:
    nothing more is sent, and a resumable session stays persisted.
    """

    def __init__(self, session: TransferSession) -> None:
        self._session = session
        self._queue: queue.SimpleQueue[bytes] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._done = threading.Event()
        self._settled = False
        self._settling_thread: threading.Thread | None = None
        self._ended = False
        self._aborted = False
        self._bytes_written = 0
        self._result: ObjectMetadata | None = None
        self._error: Exception | None = None
        self._complete_callbacks: list[CompleteCallback] = []
        self._error_callbacks: list[ErrorCallback] = []

    @property
    def handle(self) -> ObjectHandle:
        """Destination object."""
        return self._session.handle

    @property
    def phase(self) -> TransferPhase:
        """Current phase of the underlying session."""
        return self._session.phase

    @property
    def closed(self) -> bool:
        """True once no more data is accepted."""
        return self._ended or self._settled

    @property
    def bytes_written(self) -> int:
        """Bytes accepted from the caller so far."""
        return self._bytes_written

    def writable(self) -> bool:
        return not self.closed

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Queue bytes for upload.

        Returns:
            Number of bytes accepted.

        Raises:
            Exception: The session's error, if the upload already failed.
            ValueError: If the stream is closed.
        """
        if self._settled and self._error is not None:
            raise self._error
        if self.closed:
            raise ValueError(f"Upload stream for {self.handle} is closed")

        chunk = bytes(data)
        self._start()
        if chunk:
            self._queue.put(chunk)
            self._bytes_written += len(chunk)
        return len(chunk)

    def writelines(self, lines: Iterable[bytes]) -> None:
        for line in lines:
            self.write(line)

    def close(self) -> None:
        """Signal end of data and wait for the upload to finish.

        Raises:
            Exception: The session's error, if the upload failed.
        """
        with self._lock:
            already_ended = self._ended
            self._ended = True
        if not already_ended:
            self._start()
            self._queue.put(_EOF)

        self._wait()
        if self._error is not None:
            raise self._error

    def abort(self) -> None:
        """Stop the upload without finalizing it.

        No abort request is sent: bytes already received by the server stay
        there, and a resumable upload can be continued by a later attempt.
        """
        with self._lock:
            if self._ended:
                return
            self._ended = True
            self._aborted = True
            started = self._thread is not None

        if not started:
            self._session.cancel()
            self._settle(error=UploadAbortedError(f"Upload of {self.handle} aborted"))
            return

        self._queue.put(_EOF)
        self._wait()

    def result(self, timeout: float | None = None) -> ObjectMetadata:
        """Wait for the upload and return the final object metadata.

        Raises:
            TimeoutError: If the upload is still running after timeout.
            Exception: The session's error, if the upload failed.
        """
        if not self._wait(timeout):
            raise TimeoutError(f"Upload of {self.handle} still in progress")
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise RuntimeError(f"Upload of {self.handle} finished without metadata")
        return self._result

    def exception(self, timeout: float | None = None) -> Exception | None:
        """Wait for the upload and return its error, if any."""
        if not self._wait(timeout):
            raise TimeoutError(f"Upload of {self.handle} still in progress")
        return self._error

    def on_complete(self, callback: CompleteCallback) -> None:
        """Register a callback for successful completion.

        Called at once if the upload already succeeded.
        """
        with self._lock:
            if not self._settled:
                self._complete_callbacks.append(callback)
                return
        if self._error is None and self._result is not None:
            _invoke(callback, self._result)

    def on_error(self, callback: ErrorCallback) -> None:
        """Register a callback for failure.

        Called at once if the upload already failed.
        """
        with self._lock:
            if not self._settled:
                self._error_callbacks.append(callback)
                return
        if self._error is not None:
            _invoke(callback, self._error)

    def __enter__(self) -> UploadStream:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, *args: object) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def _wait(self, timeout: float | None = None) -> bool:
        """Wait until the upload is settled.

        Callbacks run before waiters are released; when one of them asks for
        the outcome it is already known, so the settling thread never blocks.
        """
        if self._settled and threading.current_thread() is self._settling_thread:
            return True
        return self._done.wait(timeout)

    def _start(self) -> None:
        """Start the worker thread on first use."""
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run,
                name=f"upload-{self.handle}",
                daemon=True,
            )
            self._thread.start()

    def _chunks(self) -> Iterator[bytes]:
        """Queued bytes, in write order, until end of data."""
        while True:
            item = self._queue.get()
            if self._aborted:
                raise UploadAbortedError(f"Upload of {self.handle} aborted")
            if item == _EOF:
                return
            yield item

    def _run(self) -> None:
        try:
            result = self._session.run(self._chunks())
        except Exception as e:
            self._settle(error=e)
        else:
            self._settle(result=result)

    def _settle(
        self,
        result: ObjectMetadata | None = None,
        error: Exception | None = None,
    ) -> None:
        with self._lock:
            self._result = result
            self._error = error
            self._settled = True
            self._settling_thread = threading.current_thread()
            complete_callbacks = list(self._complete_callbacks)
            error_callbacks = list(self._error_callbacks)
            self._complete_callbacks.clear()
            self._error_callbacks.clear()

        if error is not None:
            for error_callback in error_callbacks:
                _invoke(error_callback, error)
        elif result is not None:
            for complete_callback in complete_callbacks:
                _invoke(complete_callback, result)

        # Waiters wake up only once callbacks have run
        self._done.set()


class DownloadStream:
    """Readable stream of an object's bytes.

    The opener runs on first read, or earlier through open(): it fetches
    the object's metadata (so a missing object fails before any media
    request) and returns the metadata together with an iterator over the
    media bytes. Any error is raised from the read or open() call and
    passed to on_error callbacks.
    """

    def __init__(
        self,
        handle: ObjectHandle,
        opener: Callable[[], tuple[ObjectMetadata, Iterator[bytes]]],
    ) -> None:
        self.handle = handle
        self.metadata: ObjectMetadata | None = None
        self._opener = opener
        self._opened: tuple[ObjectMetadata, Iterator[bytes]] | None = None
        self._buffer = bytearray()
        self._closed = False
        self._error: Exception | None = None
        self._error_callbacks: list[ErrorCallback] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return not self._closed

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            return data
        return self._next_chunk()

    def read(self, size: int | None = -1) -> bytes:
        """Read up to size bytes (all remaining bytes if size < 0)."""
        while size is None or size < 0 or len(self._buffer) < size:
            try:
                self._buffer.extend(self._next_chunk())
            except StopIteration:
                break

        if size is None or size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def close(self) -> None:
        """Release the underlying response."""
        if self._closed:
            return
        self._closed = True
        if self._opened is not None:
            close = getattr(self._opened[1], "close", None)
            if close is not None:
                close()

    def open(self) -> ObjectMetadata:
        """Fetch the object's metadata now instead of on first read.

        Returns:
            Object metadata.

        Raises:
            Exception: The metadata fetch (or authorization) error, which is
                also passed to on_error callbacks.
        """
        metadata, _ = self._ensure_open()
        return metadata

    def on_error(self, callback: ErrorCallback) -> None:
        """Register a callback for stream errors."""
        if self._error is not None:
            _invoke(callback, self._error)
        else:
            self._error_callbacks.append(callback)

    def __enter__(self) -> DownloadStream:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _ensure_open(self) -> tuple[ObjectMetadata, Iterator[bytes]]:
        if self._error is not None:
            raise self._error
        if self._closed:
            raise ValueError(f"Download stream for {self.handle} is closed")

        if self._opened is None:
            try:
                self._opened = self._opener()
            except Exception as e:
                self._fail(e)
                raise
            self.metadata = self._opened[0]
        return self._opened

    def _next_chunk(self) -> bytes:
        _, iterator = self._ensure_open()
        try:
            return next(iterator)
        except StopIteration:
            raise
        except Exception as e:
            self._fail(e)
            raise

    def _fail(self, error: Exception) -> None:
        self._error = error
        for callback in self._error_callbacks:
            _invoke(callback, error)


def _invoke(callback: Callable[..., None], *args: object) -> None:
    """Run a user callback; its failure must not break the transfer."""
    try:
        callback(*args)
    except Exception:
        logger.exception("Transfer stream callback failed")
