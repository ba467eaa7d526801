"""Chunklist verification for macOS recovery images.

A chunklist describes a companion disk image as a sequence of chunks, each
with its size and SHA-256 digest. Layout (all integers little endian):

    header (36 bytes)
        magic            u32   0x4C4B4E43 ('CNKL')
        header_size      u32
        file_version     u8    must be 1
        chunk_method     u8    must be 1
        signature_method u8    must be 1
        reserved         u8
        chunk_count      u64
        chunk_offset     u64   start of the chunk table
        signature_offset u64

    chunk table: chunk_count records of 36 bytes
        size             u32
        sha256           32 bytes

The image is hashed chunk by chunk in table order; verification stops at
the first mismatch. The header size and signature offset are read but not
checked.
"""

from __future__ import annotations

import hashlib
import logging
import struct
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

CHUNKLIST_MAGIC = 0x4C4B4E43
CHUNKLIST_FILE_VERSION = 1
CHUNKLIST_CHUNK_METHOD = 1
CHUNKLIST_SIGNATURE_METHOD = 1

HEADER_FORMAT = struct.Struct("<IIBBBBQQQ")
CHUNK_FORMAT = struct.Struct("<I32s")
HEADER_SIZE = HEADER_FORMAT.size  # 36
CHUNK_RECORD_SIZE = CHUNK_FORMAT.size  # 36


class ChunklistFormatError(ValueError):
    """Raised when a chunklist is malformed or truncated."""


@dataclass(frozen=True)
class ChunklistHeader:
    """Parsed chunklist header."""

    magic: int
    header_size: int
    file_version: int
    chunk_method: int
    signature_method: int
    chunk_count: int
    chunk_offset: int
    signature_offset: int

    @property
    def is_supported(self) -> bool:
        """Whether magic and version fields match the supported format."""
        return (
            self.magic == CHUNKLIST_MAGIC
            and self.file_version == CHUNKLIST_FILE_VERSION
            and self.chunk_method == CHUNKLIST_CHUNK_METHOD
            and self.signature_method == CHUNKLIST_SIGNATURE_METHOD
        )


@dataclass(frozen=True)
class ChunkRecord:
    """One chunk table record."""

    size: int
    sha256: bytes


def parse_header(data: bytes) -> ChunklistHeader:
    """Parse the fixed 36-byte header.

    Args:
        data: At least the first 36 bytes of the chunklist.

    Returns:
        Parsed header (not yet validated).

    Raises:
        ChunklistFormatError: If fewer than 36 bytes are given.
    """
    if len(data) < HEADER_SIZE:
        raise ChunklistFormatError(
            f"Chunklist header truncated: {len(data)} of {HEADER_SIZE} bytes"
        )
    (
        magic,
        header_size,
        file_version,
        chunk_method,
        signature_method,
        _reserved,
        chunk_count,
        chunk_offset,
        signature_offset,
    ) = HEADER_FORMAT.unpack_from(data)
    return ChunklistHeader(
        magic=magic,
        header_size=header_size,
        file_version=file_version,
        chunk_method=chunk_method,
        signature_method=signature_method,
        chunk_count=chunk_count,
        chunk_offset=chunk_offset,
        signature_offset=signature_offset,
    )


def iter_chunks(stream: BinaryIO, header: ChunklistHeader) -> Iterator[ChunkRecord]:
    """Yield chunk records lazily from the chunk table.

    Raises:
        ChunklistFormatError: If the table offset cannot be reached or the
            table ends before ``chunk_count`` records.
    """
    try:
        stream.seek(header.chunk_offset)
    except (ValueError, OverflowError, OSError) as e:
        raise ChunklistFormatError(
            f"Invalid chunk table offset {header.chunk_offset}: {e}"
        ) from e
    for index in range(header.chunk_count):
        record = stream.read(CHUNK_RECORD_SIZE)
        if len(record) < CHUNK_RECORD_SIZE:
            raise ChunklistFormatError(
                f"Chunk table truncated at record {index} of {header.chunk_count}"
            )
        size, digest = CHUNK_FORMAT.unpack(record)
        yield ChunkRecord(size=size, sha256=digest)


def verify_chunklist(image_path: Path, chunklist_path: Path) -> bool:
    """Verify a disk image against its chunklist.

    Args:
        image_path: Path to the disk image.
        chunklist_path: Path to the chunklist.

    Returns:
        True only if the header is supported and every chunk digest matches.
        Malformed or truncated inputs yield False.
    """
    with chunklist_path.open("rb") as chunklist, image_path.open("rb") as image:
        try:
            header = parse_header(chunklist.read(HEADER_SIZE))
        except ChunklistFormatError as e:
            logger.error("%s: %s", chunklist_path.name, e)
            return False

        if not header.is_supported:
            logger.error(
                "%s: unsupported chunklist (magic=%#x version=%d chunk=%d sig=%d)",
                chunklist_path.name,
                header.magic,
                header.file_version,
                header.chunk_method,
                header.signature_method,
            )
            return False

        logger.debug(
            "Verifying %s against %d chunks", image_path.name, header.chunk_count
        )

        try:
            for index, chunk in enumerate(iter_chunks(chunklist, header)):
                data = image.read(chunk.size)
                if len(data) < chunk.size:
                    logger.error(
                        "%s: image ended inside chunk %d", image_path.name, index
                    )
                    return False
                if hashlib.sha256(data).digest() != chunk.sha256:
                    logger.error(
                        "%s: chunk %d digest mismatch", image_path.name, index
                    )
                    return False
        except ChunklistFormatError as e:
            logger.error("%s: %s", chunklist_path.name, e)
            return False

    return True


def verify_chunklist_paths(
    paths: Sequence[Path], release: str, edition: str, arch: str
) -> bool:
    """Post-download verifier: ``paths[0]`` is the image, ``paths[1]`` its chunklist."""
    if len(paths) < 2:
        logger.error("Chunklist verification needs an image and a chunklist")
        return False
    return verify_chunklist(Path(paths[0]), Path(paths[1]))


__all__ = [
    "CHUNKLIST_MAGIC",
    "CHUNK_RECORD_SIZE",
    "HEADER_SIZE",
    "ChunkRecord",
    "ChunklistFormatError",
    "ChunklistHeader",
    "iter_chunks",
    "parse_header",
    "verify_chunklist",
    "verify_chunklist_paths",
]
