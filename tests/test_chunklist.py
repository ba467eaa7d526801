"""Tests for chunklist verification."""

import hashlib
import struct

import pytest

from quickget.fetch.chunklist import (
    CHUNKLIST_MAGIC,
    HEADER_SIZE,
    ChunklistFormatError,
    iter_chunks,
    parse_header,
    verify_chunklist,
    verify_chunklist_paths,
)


def build_chunklist(
    chunks: list[bytes],
    magic: int = CHUNKLIST_MAGIC,
    version: int = 1,
    chunk_method: int = 1,
    signature_method: int = 1,
    digests: list[bytes] | None = None,
    count: int | None = None,
    chunk_offset: int = HEADER_SIZE,
) -> bytes:
    """Build a chunklist for ``chunks`` with the table right after the header."""
    if digests is None:
        digests = [hashlib.sha256(chunk).digest() for chunk in chunks]
    count = len(chunks) if count is None else count
    table = b"".join(
        struct.pack("<I32s", len(chunk), digest)
        for chunk, digest in zip(chunks, digests)
    )
    header = struct.pack(
        "<IIBBBBQQQ",
        magic,
        HEADER_SIZE,
        version,
        chunk_method,
        signature_method,
        0,
        count,
        chunk_offset,
        HEADER_SIZE + len(table),
    )
    return header + table


@pytest.fixture
def image_chunks() -> list[bytes]:
    return [b"A" * 1000, b"B" * 500, b"C" * 17]


def write_pair(tmp_path, image: bytes, chunklist: bytes):
    image_path = tmp_path / "BaseSystem.dmg"
    chunklist_path = tmp_path / "BaseSystem.chunklist"
    image_path.write_bytes(image)
    chunklist_path.write_bytes(chunklist)
    return image_path, chunklist_path


class TestParseHeader:
    """Tests for parse_header function."""

    def test_fields(self, image_chunks):
        """Header fields should be decoded little endian."""
        header = parse_header(build_chunklist(image_chunks))

        assert header.magic == CHUNKLIST_MAGIC
        assert header.header_size == HEADER_SIZE
        assert header.chunk_count == 3
        assert header.chunk_offset == HEADER_SIZE
        assert header.is_supported

    def test_magic_bytes(self):
        """The magic should be the ASCII bytes 'CNKL' on disk."""
        assert struct.pack("<I", CHUNKLIST_MAGIC) == b"CNKL"

    def test_truncated(self):
        """Fewer than 36 bytes should be rejected."""
        with pytest.raises(ChunklistFormatError):
            parse_header(b"CNKL" + b"\x00" * 10)

    def test_unsupported_version(self, image_chunks):
        """A different version should not be supported."""
        header = parse_header(build_chunklist(image_chunks, version=2))
        assert not header.is_supported


class TestIterChunks:
    """Tests for iter_chunks function."""

    def test_records(self, tmp_path, image_chunks):
        """Records should be yielded in table order."""
        path = tmp_path / "x.chunklist"
        path.write_bytes(build_chunklist(image_chunks))
        with path.open("rb") as f:
            header = parse_header(f.read(HEADER_SIZE))
            sizes = [chunk.size for chunk in iter_chunks(f, header)]
        assert sizes == [1000, 500, 17]


class TestVerifyChunklist:
    """Tests for verify_chunklist function."""

    def test_valid(self, tmp_path, image_chunks):
        """A matching image should verify."""
        image, chunklist = write_pair(
            tmp_path, b"".join(image_chunks), build_chunklist(image_chunks)
        )
        assert verify_chunklist(image, chunklist) is True

    def test_bad_magic(self, tmp_path, image_chunks):
        """A different magic number should be rejected."""
        image, chunklist = write_pair(
            tmp_path,
            b"".join(image_chunks),
            build_chunklist(image_chunks, magic=0x12345678),
        )
        assert verify_chunklist(image, chunklist) is False

    @pytest.mark.parametrize(
        "field", ["version", "chunk_method", "signature_method"]
    )
    def test_bad_methods(self, tmp_path, image_chunks, field):
        """Unsupported version or methods should be rejected."""
        image, chunklist = write_pair(
            tmp_path,
            b"".join(image_chunks),
            build_chunklist(image_chunks, **{field: 2}),
        )
        assert verify_chunklist(image, chunklist) is False

    def test_truncated_header(self, tmp_path, image_chunks):
        """A chunklist shorter than its header should be rejected."""
        image, chunklist = write_pair(
            tmp_path, b"".join(image_chunks), build_chunklist(image_chunks)[:20]
        )
        assert verify_chunklist(image, chunklist) is False

    def test_truncated_table(self, tmp_path, image_chunks):
        """A table shorter than chunk_count * 36 bytes should be rejected."""
        data = build_chunklist(image_chunks, count=5)
        image, chunklist = write_pair(tmp_path, b"".join(image_chunks) * 2, data)
        assert verify_chunklist(image, chunklist) is False

    def test_table_cut_mid_record(self, tmp_path, image_chunks):
        """A record cut short should be rejected."""
        data = build_chunklist(image_chunks)[:-10]
        image, chunklist = write_pair(tmp_path, b"".join(image_chunks), data)
        assert verify_chunklist(image, chunklist) is False

    def test_digest_mismatch(self, tmp_path, image_chunks):
        """A corrupted chunk should be rejected."""
        corrupted = b"".join(image_chunks).replace(b"B" * 500, b"B" * 499 + b"X")
        image, chunklist = write_pair(tmp_path, corrupted, build_chunklist(image_chunks))
        assert verify_chunklist(image, chunklist) is False

    def test_short_image(self, tmp_path, image_chunks):
        """An image ending inside a chunk should be rejected."""
        image, chunklist = write_pair(
            tmp_path, b"".join(image_chunks)[:-5], build_chunklist(image_chunks)
        )
        assert verify_chunklist(image, chunklist) is False

    @pytest.mark.parametrize("offset", [2**63, 2**64 - 1])
    def test_unseekable_table_offset(self, tmp_path, image_chunks, offset):
        """A table offset beyond any seekable position should be rejected."""
        image, chunklist = write_pair(
            tmp_path,
            b"".join(image_chunks),
            build_chunklist(image_chunks, chunk_offset=offset),
        )
        assert verify_chunklist(image, chunklist) is False

    def test_table_offset_past_end(self, tmp_path, image_chunks):
        """A table offset past the end of the file should be rejected."""
        image, chunklist = write_pair(
            tmp_path,
            b"".join(image_chunks),
            build_chunklist(image_chunks, chunk_offset=10_000),
        )
        assert verify_chunklist(image, chunklist) is False

    def test_empty_table(self, tmp_path):
        """A chunklist with no chunks should verify any image."""
        image, chunklist = write_pair(tmp_path, b"anything", build_chunklist([]))
        assert verify_chunklist(image, chunklist) is True


class TestVerifyChunklistPaths:
    """Tests for verify_chunklist_paths function."""

    def test_image_then_chunklist(self, tmp_path, image_chunks):
        """paths[0] is the image, paths[1] the chunklist."""
        image, chunklist = write_pair(
            tmp_path, b"".join(image_chunks), build_chunklist(image_chunks)
        )
        assert verify_chunklist_paths([image, chunklist], "sonoma", "", "x86_64") is True

    def test_needs_two_paths(self, tmp_path):
        """A single path cannot be verified."""
        assert verify_chunklist_paths([tmp_path / "x.dmg"], "sonoma", "", "x86_64") is False
