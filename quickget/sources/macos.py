"""macOS recovery images from Apple's recovery service.

Resolving a release takes a small handshake with osrecovery.apple.com:

1. GET the service root to obtain a session cookie
2. POST a board ID, serial and random identifiers to the recovery image
   endpoint, which answers with ``KEY: value`` lines
3. The image (AU) and its chunklist (CU) are downloaded from the CDN with
   the asset tokens (AT, CT) sent as cookies

The chunklist is then used to verify the image chunk by chunk.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Sequence
from functools import partial
from pathlib import Path

from quickget.catalog.models import (
    AdditiveConfig,
    BasicReleases,
    CatalogEntry,
    HeadersURL,
    PostVerifyChecksum,
)
from quickget.errors import URL_LOOKUP_FAILED, SourceError
from quickget.fetch.chunklist import verify_chunklist_paths
from quickget.fetch.http import PageFetcher

logger = logging.getLogger(__name__)

RECOVERY_URL = "http://osrecovery.apple.com/"
RECOVERY_IMAGE_URL = "http://osrecovery.apple.com/InstallationPayload/RecoveryImage"
RECOVERY_HOST = "osrecovery.apple.com"
CDN_HOST = "oscdn.apple.com"
RECOVERY_USER_AGENT = "InternetRecovery/1.0"

# Lengths of the random hex identifiers sent with the request
TYPE_SID = 16
TYPE_K = 64
TYPE_FG = 64

# Response keys
INFO_IMAGE_LINK = "AU"
INFO_IMAGE_SESS = "AT"
INFO_SIGN_LINK = "CU"
INFO_SIGN_SESS = "CT"

# Release -> (board ID, MLB serial)
BOARD_IDS: dict[str, tuple[str, str]] = {
    "high-sierra": ("Mac-BE088AF8C5EB4FA2", "00000000000J80300"),
    "mojave": ("Mac-7BA5B2DFE22DDD8C", "00000000000KXPG00"),
    "catalina": ("Mac-00BE6ED71E35EB86", "00000000000000000"),
    "big-sur": ("Mac-42FD25EABCABB274", "00000000000000000"),
    "monterey": ("Mac-E43C1C25D4880AD6", "00000000000000000"),
    "ventura": ("Mac-BE088AF8C5EB4FA2", "00000000000000000"),
    "sonoma": ("Mac-53FDB3D8DB8CA971", "00000000000000000"),
}

_HEX_DIGITS = "0123456789ABCDEF"


def generate_id(length: int) -> str:
    """Return a random uppercase hex string."""
    return "".join(secrets.choice(_HEX_DIGITS) for _ in range(length))


def recovery_request_body(board_id: str, mlb: str) -> str:
    """Build the ``\\nkey=value`` request body for the recovery endpoint."""
    fields = [
        ("cid", generate_id(TYPE_SID)),
        ("sn", mlb),
        ("bid", board_id),
        ("k", generate_id(TYPE_K)),
        ("fg", generate_id(TYPE_FG)),
        ("os", "default"),
    ]
    return "".join(f"\n{key}={value}" for key, value in fields)


def parse_recovery_info(text: str) -> dict[str, str]:
    """Parse ``KEY: value`` lines; lines without the separator are ignored."""
    info: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(": ")
        if sep:
            info.setdefault(key.strip(), value.strip())
    return info


def _cdn_headers(token: str) -> dict[str, str]:
    return {
        "Host": CDN_HOST,
        "Connection": "close",
        "User-Agent": RECOVERY_USER_AGENT,
        "Cookie": f"AssetToken={token}",
    }


def recovery_targets(
    fetcher: PageFetcher, release: str, edition: str, arch: str
) -> list[tuple[str, dict[str, str]]]:
    """Resolve the image and chunklist addresses for a release.

    Args:
        fetcher: Page fetcher.
        release: macOS release name, e.g. 'sonoma'.
        edition: Unused.
        arch: Unused.

    Returns:
        [(image url, headers), (chunklist url, headers)].

    Raises:
        SourceError: If the release is unknown or the handshake fails.
    """
    if release not in BOARD_IDS:
        raise SourceError(f"Invalid macOS release: {release}", code=URL_LOOKUP_FAILED)
    board_id, mlb = BOARD_IDS[release]

    session = fetcher.request(
        "GET",
        RECOVERY_URL,
        headers={"Host": RECOVERY_HOST, "User-Agent": RECOVERY_USER_AGENT},
    )
    cookies = list(session.cookies.items())
    if not cookies:
        raise SourceError(
            "Recovery service did not return a session cookie", code=URL_LOOKUP_FAILED
        )
    cookie_name, cookie_value = cookies[0]

    body = fetcher.post_text(
        RECOVERY_IMAGE_URL,
        content=recovery_request_body(board_id, mlb),
        headers={
            "Host": RECOVERY_HOST,
            "Connection": "close",
            "User-Agent": RECOVERY_USER_AGENT,
            "Content-Type": "text/plain",
            "Cookie": f"{cookie_name}={cookie_value}",
        },
    )
    info = parse_recovery_info(body)

    missing = [
        key
        for key in (INFO_IMAGE_LINK, INFO_IMAGE_SESS, INFO_SIGN_LINK, INFO_SIGN_SESS)
        if key not in info
    ]
    if missing:
        raise SourceError(
            f"Recovery response is missing {', '.join(missing)}", code=URL_LOOKUP_FAILED
        )

    logger.debug("Recovery image for %s: %s", release, info[INFO_IMAGE_LINK])
    return [
        (info[INFO_IMAGE_LINK], _cdn_headers(info[INFO_IMAGE_SESS])),
        (info[INFO_SIGN_LINK], _cdn_headers(info[INFO_SIGN_SESS])),
    ]


def macos_config(
    paths: Sequence[Path], release: str, edition: str, arch: str
) -> str:
    """Extra config lines; monterey is limited to two cores."""
    if release == "monterey":
        return f"macos_release={release}\ncpu_cores=2"
    return f"macos_release={release}"


def macos_entries(fetcher: PageFetcher) -> list[CatalogEntry]:
    """Build the macOS entry."""
    return [
        CatalogEntry(
            name="macos",
            pretty_name="macOS",
            homepage="https://www.apple.com/macos/",
            releases=BasicReleases(tuple(BOARD_IDS)),
            url=HeadersURL(partial(recovery_targets, fetcher)),
            checksum=PostVerifyChecksum(verify_chunklist_paths),
            config=AdditiveConfig(macos_config),
        )
    ]


__all__ = [
    "BOARD_IDS",
    "generate_id",
    "macos_config",
    "macos_entries",
    "parse_recovery_info",
    "recovery_request_body",
    "recovery_targets",
]
