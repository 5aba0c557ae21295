"""Content checksums for end-to-end transfer validation.

This module provides:
- ChecksumValidator: incremental MD5 / CRC32C digest of a byte stream
- compute_digest / compute_file_digest: one-shot helpers
- digests_match: comparison against a server-reported digest

Digests are base64-encoded, the form the object store reports them in
(``md5Hash`` and ``crc32c`` metadata fields).
"""

from __future__ import annotations

import base64
import hashlib
import re
from pathlib import Path

import google_crc32c

from storagexfer.core.config import ValidationMode

# Block size used when hashing or streaming files
READ_BLOCK_SIZE = 256 * 1024  # 256 KiB

# Anything before the first base64 character is not part of the digest
_NON_BASE64_PREFIX = re.compile(r"^[^A-Za-z0-9+/=]+")

# Metadata field holding the server digest for each mode
SERVER_DIGEST_FIELDS = {
    ValidationMode.MD5: "md5Hash",
    ValidationMode.CRC32C: "crc32c",
}


def normalize_server_digest(value: str | None) -> str | None:
    """Strip any non-base64 prefix the server may prepend to a digest."""
    if value is None:
        return None
    return _NON_BASE64_PREFIX.sub("", value.strip())


class ChecksumValidator:
    """Incremental digest over the exact bytes of a transfer.

    Fed chunk by chunk as bytes are written, so the payload never has
    to be buffered. With ``ValidationMode.NONE`` nothing is hashed and
    every comparison reports a match.
    """

    def __init__(self, mode: ValidationMode | str) -> None:
        self.mode = ValidationMode(mode)
        self.bytes_hashed = 0
        self._md5 = hashlib.md5() if self.mode is ValidationMode.MD5 else None
        self._crc = google_crc32c.Checksum() if self.mode is ValidationMode.CRC32C else None

    def update(self, data: bytes) -> None:
        """Feed the next chunk of the stream."""
        if not data:
            return
        self.bytes_hashed += len(data)
        if self._md5 is not None:
            self._md5.update(data)
        elif self._crc is not None:
            self._crc.update(data)

    def digest(self) -> str | None:
        """Base64 digest of everything fed so far (None when mode is none)."""
        if self._md5 is not None:
            raw = self._md5.digest()
        elif self._crc is not None:
            raw = self._crc.digest()
        else:
            return None
        return base64.b64encode(raw).decode("ascii")

    def matches(self, server_digest: str | None) -> bool:
        """Compare the local digest with a server-reported one."""
        return digests_match(self.mode, self.digest(), server_digest)

    def matches_metadata(self, metadata: dict[str, object]) -> bool:
        """Compare against the digest field of raw object metadata."""
        if self.mode is ValidationMode.NONE:
            return True
        value = metadata.get(SERVER_DIGEST_FIELDS[self.mode])
        return self.matches(value if isinstance(value, str) else None)


def compute_digest(mode: ValidationMode | str, data: bytes) -> str | None:
    """Compute the base64 digest of a byte string.

    Args:
        mode: Checksum algorithm.
        data: Bytes to hash.

    Returns:
        Base64 digest, or None for ValidationMode.NONE.
    """
    validator = ChecksumValidator(mode)
    validator.update(data)
    return validator.digest()


def compute_file_digest(mode: ValidationMode | str, path: Path) -> str | None:
    """Compute the base64 digest of a file, reading it in blocks."""
    validator = ChecksumValidator(mode)
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(READ_BLOCK_SIZE), b""):
            validator.update(block)
    return validator.digest()


def digests_match(
    mode: ValidationMode | str,
    local_digest: str | None,
    server_digest: str | None,
) -> bool:
    """Check a locally computed digest against the server-reported one.

    A missing server digest counts as a mismatch; mode none always matches.
    """
    if ValidationMode(mode) is ValidationMode.NONE:
        return True
    server = normalize_server_digest(server_digest)
    if not server or local_digest is None:
        return False
    return local_digest == server
