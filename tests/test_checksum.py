"""Tests for checksum computation and comparison."""

from pathlib import Path

import pytest

from storagexfer.core.checksum import (
    ChecksumValidator,
    compute_digest,
    compute_file_digest,
    digests_match,
    normalize_server_digest,
)
from storagexfer.core.config import ValidationMode

MD5_TEST = "CY9rzUYh03PK3k6DJie09g=="  # md5(b"test")
CRC32C_CHECK = "4waSgw=="  # crc32c(b"123456789") == 0xE3069283


class TestComputeDigest:
    """Tests for compute_digest."""

    def test_md5(self) -> None:
        """MD5 digest should be base64 encoded."""
        assert compute_digest(ValidationMode.MD5, b"test") == MD5_TEST

    def test_crc32c(self) -> None:
        """CRC32C digest should be the big-endian value, base64 encoded."""
        assert compute_digest(ValidationMode.CRC32C, b"123456789") == CRC32C_CHECK

    def test_none(self) -> None:
        """Mode none produces no digest."""
        assert compute_digest(ValidationMode.NONE, b"test") is None

    def test_accepts_string_mode(self) -> None:
        """Mode may be given by name."""
        assert compute_digest("md5", b"test") == MD5_TEST


class TestChecksumValidator:
    """Tests for incremental validation."""

    @pytest.mark.parametrize("mode", [ValidationMode.MD5, ValidationMode.CRC32C])
    def test_incremental_equals_one_shot(self, mode: ValidationMode) -> None:
        """Chunked updates should give the same digest as one update."""
        data = b"0123456789" * 1000
        validator = ChecksumValidator(mode)
        for i in range(0, len(data), 333):
            validator.update(data[i:i + 333])

        assert validator.digest() == compute_digest(mode, data)
        assert validator.bytes_hashed == len(data)

    def test_empty_chunks_ignored(self) -> None:
        """Empty updates should not change anything."""
        validator = ChecksumValidator(ValidationMode.MD5)
        validator.update(b"")
        validator.update(b"test")
        validator.update(b"")

        assert validator.digest() == MD5_TEST
        assert validator.bytes_hashed == 4

    def test_matches_metadata_md5(self) -> None:
        """Should compare against md5Hash."""
        validator = ChecksumValidator(ValidationMode.MD5)
        validator.update(b"test")

        assert validator.matches_metadata({"md5Hash": MD5_TEST})
        assert not validator.matches_metadata({"md5Hash": "bad-hash"})

    def test_matches_metadata_crc32c_with_prefix(self) -> None:
        """Leading non-base64 characters from the server are ignored."""
        validator = ChecksumValidator(ValidationMode.CRC32C)
        validator.update(b"123456789")

        assert validator.matches_metadata({"crc32c": "####" + CRC32C_CHECK})

    def test_missing_server_digest_is_mismatch(self) -> None:
        """A server response without the digest field cannot be trusted."""
        validator = ChecksumValidator(ValidationMode.MD5)
        validator.update(b"test")

        assert not validator.matches_metadata({"crc32c": CRC32C_CHECK})

    def test_none_always_matches(self) -> None:
        """Mode none compares nothing."""
        validator = ChecksumValidator(ValidationMode.NONE)
        validator.update(b"test")

        assert validator.digest() is None
        assert validator.matches_metadata({})


class TestHelpers:
    """Tests for module helpers."""

    def test_normalize_server_digest(self) -> None:
        """Should strip prefixes and whitespace only."""
        assert normalize_server_digest("####hqBywA==") == "hqBywA=="
        assert normalize_server_digest(" CY9rzUYh03PK3k6DJie09g== ") == MD5_TEST
        assert normalize_server_digest(None) is None

    def test_digests_match(self) -> None:
        """Missing digests never match outside mode none."""
        assert digests_match(ValidationMode.MD5, MD5_TEST, MD5_TEST)
        assert not digests_match(ValidationMode.MD5, MD5_TEST, None)
        assert not digests_match(ValidationMode.MD5, None, MD5_TEST)
        assert digests_match(ValidationMode.NONE, None, None)

    def test_compute_file_digest(self, tmp_path: Path) -> None:
        """File digests should match in-memory digests."""
        path = tmp_path / "data.bin"
        data = bytes(range(256)) * 2000
        path.write_bytes(data)

        assert compute_file_digest(ValidationMode.CRC32C, path) == compute_digest(
            ValidationMode.CRC32C, data
        )
