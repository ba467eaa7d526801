"""Sources with a fixed release list and templated download addresses."""

from __future__ import annotations

import logging
from functools import partial

from quickget.catalog.models import (
    BasicReleases,
    CatalogEntry,
    FormatURL,
    PrefetchChecksum,
    format_template,
)
from quickget.errors import CHECKSUM_LOOKUP_FAILED, SourceError
from quickget.fetch.checksums import parse_checksum_line
from quickget.fetch.http import PageFetcher

logger = logging.getLogger(__name__)

ZORIN_URL = "https://zrn.co/{RELEASE}{EDITION}"
ZORIN_RELEASES = ("16", "17")
ZORIN_EDITIONS = ("core64", "lite64", "education64", "edulite64")

KDENEON_URL = (
    "https://files.kde.org/neon/images/{RELEASE}/current/neon-{RELEASE}-current.iso"
)
KDENEON_CHECKSUM_URL = (
    "https://files.kde.org/neon/images/{RELEASE}/current/"
    "neon-{RELEASE}-current.sha256sum"
)
KDENEON_RELEASES = ("user", "testing", "unstable", "developer")


def kdeneon_digest(fetcher: PageFetcher, release: str, edition: str, arch: str) -> str:
    """Read the digest from the image's published ``.sha256sum`` file.

    Raises:
        SourceError: If the file cannot be fetched or is empty.
    """
    url = format_template(KDENEON_CHECKSUM_URL, release, edition, arch)
    digest = parse_checksum_line(fetcher.get_text(url), "")
    if not digest:
        raise SourceError(f"Empty checksum file at {url}", code=CHECKSUM_LOOKUP_FAILED)
    return digest


def basic_entries(fetcher: PageFetcher) -> list[CatalogEntry]:
    """Build the fixed-release catalog entries."""
    return [
        CatalogEntry(
            name="zorin",
            pretty_name="Zorin OS",
            homepage="https://zorin.com/os/",
            releases=BasicReleases(ZORIN_RELEASES, ZORIN_EDITIONS),
            url=FormatURL(ZORIN_URL),
        ),
        CatalogEntry(
            name="kdeneon",
            pretty_name="KDE Neon",
            homepage="https://neon.kde.org/",
            releases=BasicReleases(KDENEON_RELEASES),
            url=FormatURL(KDENEON_URL),
            checksum=PrefetchChecksum(partial(kdeneon_digest, fetcher)),
        ),
    ]


__all__ = ["basic_entries", "kdeneon_digest"]
