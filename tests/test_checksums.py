"""Tests for checksum helpers."""

import hashlib

import pytest

from quickget.errors import READ_ERROR, UNKNOWN_ALGORITHM, ChecksumError
from quickget.fetch.checksums import (
    compute_file_digest,
    guess_algorithm,
    parse_checksum_line,
    verify_file,
)


class TestGuessAlgorithm:
    """Tests for guess_algorithm function."""

    @pytest.mark.parametrize(
        ("length", "algorithm"),
        [(32, "md5"), (40, "sha1"), (64, "sha256"), (128, "sha512")],
    )
    def test_known_lengths(self, length, algorithm):
        """Known digest lengths should select their algorithm."""
        assert guess_algorithm("a" * length) == algorithm

    @pytest.mark.parametrize("length", [0, 1, 31, 33, 56, 96, 127, 129, 256])
    def test_other_lengths_fail(self, length):
        """Any other length should raise ChecksumError."""
        with pytest.raises(ChecksumError) as exc_info:
            guess_algorithm("a" * length)
        assert exc_info.value.code == UNKNOWN_ALGORITHM
        assert "Can't guess hash algorithm" in str(exc_info.value)

    def test_surrounding_whitespace_ignored(self):
        """Trailing newlines should not change the length."""
        assert guess_algorithm("a" * 64 + "\n") == "sha256"


class TestComputeFileDigest:
    """Tests for compute_file_digest function."""

    def test_sha256(self, tmp_path):
        """Should compute the correct SHA256 digest."""
        test_file = tmp_path / "test.bin"
        content = b"Hello, World!"
        test_file.write_bytes(content)

        assert compute_file_digest(test_file) == hashlib.sha256(content).hexdigest()

    def test_small_chunks(self, tmp_path):
        """Chunk size should not affect the digest."""
        test_file = tmp_path / "test.bin"
        content = bytes(range(256)) * 10
        test_file.write_bytes(content)

        assert compute_file_digest(test_file, "md5", chunk_size=7) == (
            hashlib.md5(content).hexdigest()
        )

    def test_missing_file(self, tmp_path):
        """Unreadable files should raise ChecksumError."""
        with pytest.raises(ChecksumError) as exc_info:
            compute_file_digest(tmp_path / "missing.iso")
        assert exc_info.value.code == READ_ERROR


class TestVerifyFile:
    """Tests for verify_file function."""

    @pytest.mark.parametrize("algorithm", ["md5", "sha1", "sha256", "sha512"])
    def test_match(self, tmp_path, algorithm):
        """Matching digests of every supported length should verify."""
        test_file = tmp_path / "image.iso"
        test_file.write_bytes(b"image data")
        expected = hashlib.new(algorithm, b"image data").hexdigest()

        matches, used, actual = verify_file(test_file, expected.upper())

        assert matches is True
        assert used == algorithm
        assert actual == expected

    def test_mismatch(self, tmp_path):
        """A different digest should not verify."""
        test_file = tmp_path / "image.iso"
        test_file.write_bytes(b"image data")

        matches, used, actual = verify_file(test_file, "0" * 64)

        assert matches is False
        assert used == "sha256"
        assert actual == hashlib.sha256(b"image data").hexdigest()

    def test_unknown_length(self, tmp_path):
        """Digests of unknown length should raise."""
        test_file = tmp_path / "image.iso"
        test_file.write_bytes(b"image data")
        with pytest.raises(ChecksumError):
            verify_file(test_file, "abc")


class TestParseChecksumLine:
    """Tests for parse_checksum_line function."""

    def test_standard_format(self):
        """Should parse coreutils text mode."""
        content = "abc123  neon-user-current.iso\n"
        assert parse_checksum_line(content, "neon-user-current.iso") == "abc123"

    def test_binary_mode_format(self):
        """Should parse binary mode format with asterisk."""
        content = "ABC123 *ubuntu-24.04-desktop-amd64.iso\n"
        assert parse_checksum_line(content, "ubuntu-24.04-desktop-amd64.iso") == "abc123"

    def test_first_digest_without_filename(self):
        """An empty filename should take the first digest."""
        content = "# comment\nDEADBEEF  whatever.iso\ncafe  other.iso\n"
        assert parse_checksum_line(content, "") == "deadbeef"

    def test_bare_digest(self):
        """A bare digest should be accepted without a filename."""
        assert parse_checksum_line("deadbeef\n", "") == "deadbeef"

    def test_path_prefix(self):
        """Names with directories should match by basename."""
        content = "abc  ./images/file.iso\n"
        assert parse_checksum_line(content, "file.iso") == "abc"

    def test_not_found(self):
        """Should return None if the file is not listed."""
        assert parse_checksum_line("abc  other.iso\n", "missing.iso") is None

    def test_empty_content(self):
        """Should return None for empty content."""
        assert parse_checksum_line("", "") is None
