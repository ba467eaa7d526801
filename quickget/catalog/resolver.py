"""Parameter resolution against the catalog.

This module matches a user request (OS, release, edition, architecture)
against the catalog and either returns the unique matching entry or raises
``ResolutionError`` with a diagnostic that lists the valid alternatives.

Release sets of online entries are looked up concurrently, but results are
consumed in catalog order so the first satisfying entry always wins.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from quickget.catalog.models import CatalogEntry
from quickget.errors import QuickgetError
from quickget.types import ReleaseEditions

logger = logging.getLogger(__name__)

# Diagnostic codes
MISSING_OS = "missing_os"
UNSUPPORTED_OS = "unsupported_os"
UNSUPPORTED_ARCH = "unsupported_arch"
MISSING_RELEASE = "missing_release"
UNSUPPORTED_RELEASE = "unsupported_release"
MISSING_EDITION = "missing_edition"
UNSUPPORTED_EDITION = "unsupported_edition"


@dataclass(frozen=True)
class Diagnostic:
    """Why a request could not be resolved, and what would have worked.

    Attributes:
        code: Stable diagnostic code.
        message: One-line error for the error channel.
        choices: Listing of valid alternatives for the output channel.
    """

    code: str
    message: str
    choices: str = ""

    def __str__(self) -> str:
        if self.choices:
            return f"{self.message}\n{self.choices}"
        return self.message


class ResolutionError(QuickgetError):
    """Raised when a request does not match any catalog entry."""

    default_code = "resolution_error"

    def __init__(self, diagnostic: Diagnostic) -> None:
        """Initialize ResolutionError.

        Args:
            diagnostic: Structured description of the failure.
        """
        super().__init__(diagnostic.message, code=diagnostic.code)
        self.diagnostic = diagnostic


def list_names(catalog: Sequence[CatalogEntry]) -> str:
    """Return the sorted, de-duplicated entry names joined by spaces."""
    return " ".join(sorted({entry.name for entry in catalog}))


def format_releases(pairs: ReleaseEditions) -> str:
    """Render (release, editions) pairs for a diagnostic.

    A shared edition list is printed once; otherwise each release gets its
    own line.
    """
    releases = " ".join(release for release, _ in pairs)
    if all(not editions for _, editions in pairs):
        return f" - Releases: {releases}"
    if all(editions == pairs[0][1] for _, editions in pairs):
        return f" - Releases: {releases}\n - Editions: {' '.join(pairs[0][1])}"
    return "\n".join(
        f"{release}     -     {' '.join(editions)}" for release, editions in pairs
    )


def release_matches(pairs: ReleaseEditions, release: str, edition: str) -> bool:
    """Check whether (release, edition) is offered by ``pairs``.

    An empty edition list matches only an empty edition; otherwise the
    edition must be listed for that specific release.
    """
    if not release:
        return False
    for candidate, editions in pairs:
        if candidate != release:
            continue
        if not editions and not edition:
            return True
        if edition in editions:
            return True
    return False


def _candidates(
    catalog: Sequence[CatalogEntry],
    os: str,
    arch: str,
    default_arch: str,
) -> list[CatalogEntry]:
    """Filter the catalog by name, preferring exact architecture matches."""
    if not os:
        raise ResolutionError(
            Diagnostic(
                MISSING_OS,
                "You must specify an operating system.",
                f" - Operating systems: {list_names(catalog)}",
            )
        )

    named = [entry for entry in catalog if entry.name == os]
    exact = [entry for entry in named if entry.arch == arch]
    candidates = exact or named

    if not candidates:
        raise ResolutionError(
            Diagnostic(
                UNSUPPORTED_OS,
                f"{os} is not a supported OS.",
                f" - Operating systems: {list_names(catalog)}",
            )
        )

    if arch and arch != default_arch and not exact:
        available = " ".join(dict.fromkeys(entry.arch for entry in named))
        raise ResolutionError(
            Diagnostic(
                UNSUPPORTED_ARCH,
                f"{arch} is not a supported {candidates[0].pretty_name} architecture.",
                f" - Architectures: {available}",
            )
        )

    return candidates


def resolve(
    catalog: Sequence[CatalogEntry],
    os: str,
    release: str = "",
    edition: str = "",
    arch: str = "",
    default_arch: str = "x86_64",
    executor: ThreadPoolExecutor | None = None,
) -> CatalogEntry:
    """Find the catalog entry satisfying a request.

    Args:
        catalog: Ordered catalog entries.
        os: Requested entry name.
        release: Requested release (may be empty).
        edition: Requested edition (may be empty).
        arch: Requested architecture; empty means ``default_arch``.
        default_arch: Architecture of the running host.
        executor: Optional executor for concurrent online release lookups.
            Without one, lookups run sequentially in the calling thread.

    Returns:
        The first matching entry in catalog order.

    Raises:
        ResolutionError: If the request cannot be satisfied.
        SourceError: If an online release lookup fails.
    """
    arch = arch or default_arch
    candidates = _candidates(catalog, os, arch, default_arch)
    pretty_name = candidates[0].pretty_name

    futures: list[Future[ReleaseEditions]] = []
    if executor is not None:
        futures = [
            executor.submit(entry.collect_releases) for entry in candidates
        ]

    data: ReleaseEditions = []
    try:
        for index, entry in enumerate(candidates):
            pairs = (
                futures[index].result() if futures else entry.collect_releases()
            )
            if release_matches(pairs, release, edition):
                logger.debug(
                    "Resolved %s %s %s to %s (%s)",
                    os,
                    release,
                    edition,
                    entry.name,
                    entry.arch,
                )
                return entry
            data.extend(pairs)
    finally:
        for future in futures:
            future.cancel()

    if not release:
        raise ResolutionError(
            Diagnostic(
                MISSING_RELEASE,
                "You must specify a release.",
                format_releases(data),
            )
        )

    for candidate, editions in data:
        if candidate != release:
            continue
        if not edition:
            message = "You must specify an edition."
            code = MISSING_EDITION
        else:
            message = (
                f"{edition} is not a supported {pretty_name} {release} edition."
            )
            code = UNSUPPORTED_EDITION
        raise ResolutionError(
            Diagnostic(code, message, f" - Editions: {' '.join(editions)}")
        )

    raise ResolutionError(
        Diagnostic(
            UNSUPPORTED_RELEASE,
            f"{release} is not a supported {pretty_name} release.",
            format_releases(data),
        )
    )


__all__ = [
    "Diagnostic",
    "MISSING_EDITION",
    "MISSING_OS",
    "MISSING_RELEASE",
    "ResolutionError",
    "UNSUPPORTED_ARCH",
    "UNSUPPORTED_EDITION",
    "UNSUPPORTED_OS",
    "UNSUPPORTED_RELEASE",
    "format_releases",
    "list_names",
    "release_matches",
    "resolve",
]
