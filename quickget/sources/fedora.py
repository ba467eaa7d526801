"""Fedora, driven by the ``releases.json`` feed.

Each feed record names a version, architecture, subvariant (the edition)
and a download link, optionally with its SHA-256 digest.
"""

from __future__ import annotations

import logging
from functools import partial

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from quickget.catalog.models import (
    CatalogEntry,
    FunctionURL,
    OnlineUniqueReleases,
    PrefetchChecksum,
)
from quickget.errors import (
    CHECKSUM_LOOKUP_FAILED,
    RELEASE_LOOKUP_FAILED,
    URL_LOOKUP_FAILED,
    SourceError,
)
from quickget.fetch.http import PageFetcher

logger = logging.getLogger(__name__)

FEDORA_RELEASES_URL = "https://getfedora.org/releases.json"
FEDORA_ARCHES = ("x86_64", "aarch64")


class FedoraRelease(BaseModel):
    """One record of the Fedora releases feed."""

    model_config = ConfigDict(extra="ignore")

    version: str
    arch: str
    link: str
    subvariant: str
    sha256: str | None = None


_feed_adapter = TypeAdapter(list[FedoraRelease])


def load_feed(fetcher: PageFetcher) -> list[FedoraRelease]:
    """Fetch and parse the releases feed.

    Raises:
        SourceError: If the feed cannot be fetched or parsed.
    """
    body = fetcher.get_text(FEDORA_RELEASES_URL)
    try:
        return _feed_adapter.validate_json(body)
    except ValidationError as e:
        raise SourceError(
            f"Unable to parse the Fedora releases feed: {e}",
            code=RELEASE_LOOKUP_FAILED,
        ) from e


def fedora_releases(fetcher: PageFetcher, arch: str) -> list[tuple[str, list[str]]]:
    """Group the feed's subvariants by version for one architecture.

    Versions keep feed order; duplicate subvariants are listed once.
    """
    grouped: dict[str, list[str]] = {}
    for record in load_feed(fetcher):
        if record.arch != arch:
            continue
        editions = grouped.setdefault(record.version, [])
        if record.subvariant not in editions:
            editions.append(record.subvariant)
    return list(grouped.items())


def _matching(
    fetcher: PageFetcher, release: str, edition: str, arch: str
) -> list[FedoraRelease]:
    return [
        record
        for record in load_feed(fetcher)
        if record.version == release
        and record.subvariant == edition
        and record.arch == arch
    ]


def fedora_urls(
    fetcher: PageFetcher, release: str, edition: str, arch: str
) -> list[str]:
    """Return the download link, preferring an ISO over other image types.

    Raises:
        SourceError: If no record matches.
    """
    records = _matching(fetcher, release, edition, arch)
    if not records:
        raise SourceError(
            f"Could not find Fedora {release} {edition} for {arch}",
            code=URL_LOOKUP_FAILED,
        )
    for record in records:
        if record.link.endswith(".iso"):
            return [record.link]
    return [records[0].link]


def fedora_digest(fetcher: PageFetcher, release: str, edition: str, arch: str) -> str:
    """Return the published SHA-256 of the ISO image.

    Raises:
        SourceError: If the ISO record or its digest is missing.
    """
    for record in _matching(fetcher, release, edition, arch):
        if record.link.endswith(".iso") and record.sha256:
            return record.sha256
    raise SourceError(
        f"Checksum is not available for Fedora {release} {edition} {arch}",
        code=CHECKSUM_LOOKUP_FAILED,
    )


def fedora_entries(fetcher: PageFetcher) -> list[CatalogEntry]:
    """Build one Fedora entry per architecture."""
    return [
        CatalogEntry(
            name="fedora",
            pretty_name="Fedora",
            homepage="https://fedoraproject.org/",
            arch=arch,
            releases=OnlineUniqueReleases(partial(fedora_releases, fetcher)),
            url=FunctionURL(partial(fedora_urls, fetcher)),
            checksum=PrefetchChecksum(partial(fedora_digest, fetcher)),
        )
        for arch in FEDORA_ARCHES
    ]


__all__ = [
    "FEDORA_RELEASES_URL",
    "FedoraRelease",
    "fedora_digest",
    "fedora_entries",
    "fedora_releases",
    "fedora_urls",
    "load_feed",
]
