"""Ubuntu and its official flavours.

Supported releases come from the Launchpad series feed. Image addresses
and digests are both read from the release's ``SHA256SUMS`` listing
(falling back to ``MD5SUMS`` for older releases).
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial

from pydantic import BaseModel, ConfigDict, ValidationError

from quickget.catalog.models import (
    CatalogEntry,
    FunctionURL,
    OnlineBasicReleases,
    PrefetchChecksum,
)
from quickget.errors import RELEASE_LOOKUP_FAILED, URL_LOOKUP_FAILED, SourceError
from quickget.fetch.http import PageFetcher

logger = logging.getLogger(__name__)

LAUNCHPAD_SERIES_URL = "https://api.launchpad.net/devel/ubuntu/series"
SUPPORTED_STATUSES = frozenset({"Supported", "Current Stable Release"})
DAILY_LIVE = "daily-live"

# Catalog name -> display name
UBUNTU_FLAVOURS: dict[str, str] = {
    "ubuntu": "Ubuntu",
    "ubuntu-server": "Ubuntu Server",
    "kubuntu": "Kubuntu",
    "xubuntu": "Xubuntu",
    "lubuntu": "Lubuntu",
    "ubuntu-budgie": "Ubuntu Budgie",
    "ubuntu-mate": "Ubuntu MATE",
    "ubuntustudio": "Ubuntu Studio",
    "ubuntucinnamon": "Ubuntu Cinnamon",
    "ubuntu-unity": "Ubuntu Unity",
    "edubuntu": "Edubuntu",
    "ubuntukylin": "Ubuntu Kylin",
}

UBUNTU_ARCHES = ("x86_64", "aarch64")

_DEBIAN_ARCHES = {"x86_64": "amd64", "aarch64": "arm64"}

# Concurrent image lookups when filtering releases of other architectures
MAX_LOOKUP_WORKERS = 8


class LaunchpadSeries(BaseModel):
    """One entry of the Launchpad series feed."""

    model_config = ConfigDict(extra="ignore")

    version: str
    status: str


class LaunchpadSeriesList(BaseModel):
    """The Launchpad series feed."""

    model_config = ConfigDict(extra="ignore")

    entries: list[LaunchpadSeries]


@dataclass(frozen=True)
class UbuntuImage:
    """An image address and its published digest."""

    url: str
    digest: str


def debian_arch(arch: str) -> str:
    """Map a catalog architecture onto Ubuntu's naming (x86_64 -> amd64)."""
    return _DEBIAN_ARCHES.get(arch, arch)


def release_base_url(flavour: str, release: str, arch: str) -> str:
    """Return the directory holding the release's images and checksums."""
    if release == DAILY_LIVE:
        return f"https://cdimage.ubuntu.com/{flavour}/{release}/current/"
    if flavour in ("ubuntu", "ubuntu-server"):
        if arch != "x86_64":
            return f"https://cdimage.ubuntu.com/releases/{release}/release/"
        return f"https://releases.ubuntu.com/{release}/"
    return f"https://cdimage.ubuntu.com/{flavour}/releases/{release}/release/"


def image_kind(flavour: str, arch: str) -> tuple[str, str]:
    """Return (image suffix, sku) identifying the wanted image in a listing."""
    if flavour == "ubuntu-server":
        if arch == "riscv64":
            return ".img.gz", "live-server"
        return ".iso", "live-server"
    if flavour == "ubuntustudio":
        return ".iso", "dvd"
    return ".iso", "desktop"


def find_image(
    fetcher: PageFetcher, flavour: str, release: str, arch: str
) -> UbuntuImage:
    """Locate the image for (flavour, release, arch) in the checksum listing.

    Args:
        fetcher: Page fetcher.
        flavour: Catalog name of the flavour.
        release: Release version or 'daily-live'.
        arch: Catalog architecture.

    Returns:
        UbuntuImage with the full address and its digest.

    Raises:
        SourceError: If neither listing can be fetched or no line matches.
    """
    base = release_base_url(flavour, release, arch)
    try:
        listing = fetcher.get_text(base + "SHA256SUMS")
    except SourceError as e:
        logger.debug("No SHA256SUMS for %s %s (%s), trying MD5SUMS", flavour, release, e)
        listing = fetcher.get_text(base + "MD5SUMS")

    wanted_arch = debian_arch(arch)
    suffix, sku = image_kind(flavour, arch)
    for line in listing.splitlines():
        if wanted_arch not in line or suffix not in line or sku not in line:
            continue
        parts = line.split(maxsplit=1)
        if len(parts) != 2:
            continue
        digest, name = parts
        return UbuntuImage(url=base + name.lstrip("*").strip(), digest=digest.lower())

    raise SourceError(
        f"Could not find a {wanted_arch} image for {flavour} {release}",
        code=URL_LOOKUP_FAILED,
    )


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split(".") if part.isdigit())


def _has_image(fetcher: PageFetcher, flavour: str, release: str, arch: str) -> bool:
    try:
        find_image(fetcher, flavour, release, arch)
    except SourceError:
        return False
    return True


def supported_releases(
    fetcher: PageFetcher, flavour: str, arch: str
) -> tuple[list[str], list[str]]:
    """List supported releases (plus 'daily-live'); editions are not used.

    Releases of non-x86_64 architectures are kept only when an image can
    actually be found for them; those lookups run concurrently and keep the
    release order.

    Raises:
        SourceError: If the series feed cannot be fetched or parsed.
    """
    body = fetcher.get_text(LAUNCHPAD_SERIES_URL)
    try:
        feed = LaunchpadSeriesList.model_validate_json(body)
    except ValidationError as e:
        raise SourceError(
            f"Unable to parse the Launchpad series feed: {e}",
            code=RELEASE_LOOKUP_FAILED,
        ) from e

    releases = sorted(
        (entry.version for entry in feed.entries if entry.status in SUPPORTED_STATUSES),
        key=_version_key,
    )
    releases.append(DAILY_LIVE)

    if arch != "x86_64":
        workers = min(MAX_LOOKUP_WORKERS, len(releases))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="quickget-ubuntu-lookup"
        ) as pool:
            found = list(
                pool.map(
                    lambda release: _has_image(fetcher, flavour, release, arch),
                    releases,
                )
            )
        releases = [release for release, ok in zip(releases, found) if ok]
    return releases, []


def image_urls(
    fetcher: PageFetcher, flavour: str, release: str, edition: str, arch: str
) -> list[str]:
    """URL strategy: the single image address."""
    return [find_image(fetcher, flavour, release, arch).url]


def image_digest(
    fetcher: PageFetcher, flavour: str, release: str, edition: str, arch: str
) -> str:
    """Checksum strategy: the image's published digest."""
    return find_image(fetcher, flavour, release, arch).digest


def ubuntu_entries(fetcher: PageFetcher) -> list[CatalogEntry]:
    """Build one entry per (flavour, architecture)."""
    entries = []
    for flavour, pretty_name in UBUNTU_FLAVOURS.items():
        for arch in UBUNTU_ARCHES:
            entries.append(
                CatalogEntry(
                    name=flavour,
                    pretty_name=pretty_name,
                    homepage="https://ubuntu.com/",
                    arch=arch,
                    releases=OnlineBasicReleases(
                        partial(supported_releases, fetcher, flavour)
                    ),
                    url=FunctionURL(partial(image_urls, fetcher, flavour)),
                    checksum=PrefetchChecksum(partial(image_digest, fetcher, flavour)),
                )
            )
    return entries


__all__ = [
    "LaunchpadSeries",
    "LaunchpadSeriesList",
    "UBUNTU_FLAVOURS",
    "UbuntuImage",
    "debian_arch",
    "find_image",
    "image_kind",
    "release_base_url",
    "supported_releases",
    "ubuntu_entries",
]
