"""Shared type definitions for quickget.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# (release, editions) pairs; an empty edition list means "no edition concept"
ReleaseEditions = list[tuple[str, list[str]]]


class VerificationResult(str, Enum):
    """Result of download verification."""

    MATCH = "match"
    MISMATCH = "mismatch"
    SKIPPED = "skipped"
    UNAVAILABLE = "unavailable"


class ListFormat(str, Enum):
    """Output format for catalog listings."""

    CSV = "csv"
    JSON = "json"


@dataclass(frozen=True)
class FetchTarget:
    """One resolved download: address, request headers and local filename."""

    url: str
    filename: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ChecksumOutcome:
    """Outcome of checksum verification for one acquisition."""

    result: VerificationResult
    algorithm: str | None = None
    expected: str | None = None
    actual: str | None = None
    message: str | None = None

    @property
    def failed(self) -> bool:
        """Whether verification ran and rejected the download."""
        return self.result == VerificationResult.MISMATCH


@dataclass
class AcquisitionResult:
    """Result of a completed acquisition."""

    paths: list[Path]
    checksum: ChecksumOutcome
    config_path: Path | None = None
    targets: list[FetchTarget] = field(default_factory=list)


__all__ = [
    "AcquisitionResult",
    "ChecksumOutcome",
    "FetchTarget",
    "ListFormat",
    "ReleaseEditions",
    "VerificationResult",
]
