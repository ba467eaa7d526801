"""Checksum helpers.

The expected digest published by a source carries no algorithm label, so the
algorithm is inferred from the digest's length.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from quickget.errors import READ_ERROR, UNKNOWN_ALGORITHM, ChecksumError

logger = logging.getLogger(__name__)

# Chunk size for hashing files (bytes)
HASH_CHUNK_SIZE = 1024 * 1024  # 1 MiB

# Hex digest length -> hashlib algorithm name
ALGORITHMS_BY_LENGTH = {
    32: "md5",
    40: "sha1",
    64: "sha256",
    128: "sha512",
}


def guess_algorithm(digest: str) -> str:
    """Infer the hash algorithm from a hex digest.

    Args:
        digest: Hex digest string.

    Returns:
        One of 'md5', 'sha1', 'sha256', 'sha512'.

    Raises:
        ChecksumError: If the length matches no known algorithm.
    """
    algorithm = ALGORITHMS_BY_LENGTH.get(len(digest.strip()))
    if algorithm is None:
        raise ChecksumError(
            f"Can't guess hash algorithm for a {len(digest.strip())}-character digest",
            code=UNKNOWN_ALGORITHM,
        )
    return algorithm


def compute_file_digest(
    file_path: Path,
    algorithm: str = "sha256",
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute the hex digest of a file.

    Args:
        file_path: Path to the file.
        algorithm: hashlib algorithm name.
        chunk_size: Size of chunks to read.

    Returns:
        Lowercase hex digest.

    Raises:
        ChecksumError: If the file cannot be read.
    """
    hasher = hashlib.new(algorithm)
    try:
        with file_path.open("rb") as f:
            while chunk := f.read(chunk_size):
                hasher.update(chunk)
    except OSError as e:
        raise ChecksumError(
            f"Unable to read {file_path} for {algorithm} verification: {e}",
            code=READ_ERROR,
        ) from e
    return hasher.hexdigest()


def verify_file(file_path: Path, expected: str) -> tuple[bool, str, str]:
    """Compare a file against an expected digest.

    Args:
        file_path: Path to the file.
        expected: Expected hex digest (any case).

    Returns:
        Tuple of (matches, algorithm, actual digest).

    Raises:
        ChecksumError: If the algorithm cannot be guessed or the file read.
    """
    expected = expected.strip().lower()
    algorithm = guess_algorithm(expected)
    logger.info("Verifying %s with %s", file_path.name, algorithm)
    actual = compute_file_digest(file_path, algorithm)
    return actual == expected, algorithm, actual


def parse_checksum_line(content: str, filename: str) -> str | None:
    """Find the digest for ``filename`` in a checksum listing.

    Accepts the coreutils format (``<digest>  <name>`` or ``<digest> *<name>``)
    and bare digests as the first word of the first line.

    Args:
        content: Checksum file content.
        filename: Filename to look up; empty to take the first digest.

    Returns:
        Lowercase digest, or None if not found.
    """
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        parts = line.split(maxsplit=1)
        if not filename:
            return parts[0].lower()
        if len(parts) != 2:
            continue

        digest, name = parts
        name = name.lstrip("*").strip()
        if name == filename or name.rsplit("/", 1)[-1] == filename:
            return digest.lower()

    return None


__all__ = [
    "ALGORITHMS_BY_LENGTH",
    "compute_file_digest",
    "guess_algorithm",
    "parse_checksum_line",
    "verify_file",
]
