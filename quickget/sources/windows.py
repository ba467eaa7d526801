"""Windows, scraped from Microsoft's software-download pages.

Resolving a download link takes four requests sharing one session ID:

1. GET the release's download page and read the product edition ID from
   its ``<option>`` list
2. GET the session permit endpoint so the session ID is accepted
3. POST for the SKU table and pick the SKU of the requested language
4. POST for the download links of that SKU

The ISO is followed by the virtio-win driver ISO and the SPICE guest tools
installers used for unattended setup.
"""

from __future__ import annotations

import html
import logging
import re
import secrets
import uuid
from collections.abc import Sequence
from functools import partial
from pathlib import Path

from quickget.catalog.models import (
    BasicReleases,
    CatalogEntry,
    FunctionURL,
    OverwriteConfig,
)
from quickget.errors import URL_LOOKUP_FAILED, SourceError
from quickget.fetch.http import PageFetcher

logger = logging.getLogger(__name__)

DOWNLOAD_PAGE_URL = "https://www.microsoft.com/en-us/software-download/windows{RELEASE}"
PERMIT_URL = "https://vlscppe.microsoft.com/tags?org_id=y6jn8c31&session_id={SESSION}"
CONTENT_URL = "https://www.microsoft.com/en-US/api/controls/contentinclude/html"
SKU_PAGE_ID = "a8f8f489-4c7f-463a-9ca6-5cff94d8d041"
LINKS_PAGE_ID = "6e2a1789-ef16-4f27-a296-74ef7ef5d96b"
DOWNLOAD_HOST_PREFIX = "https://software.download.prss.microsoft.com"

VIRTIO_WIN_URL = (
    "https://fedorapeople.org/groups/virt/virtio-win/direct-downloads/"
    "stable-virtio/virtio-win.iso"
)
SPICE_GUEST_TOOLS = (
    "https://www.spice-space.org/download/windows/spice-webdavd/"
    "spice-webdavd-x64-latest.msi",
    "https://www.spice-space.org/download/windows/vdagent/vdagent-win-0.10.0/"
    "spice-vdagent-x64-0.10.0.msi",
    "https://www.spice-space.org/download/windows/usbdk/UsbDk_1.0.22_x64.msi",
)

# Pages are cut to these sizes before parsing
DOWNLOAD_PAGE_LIMIT = 102400
SKU_TABLE_LIMIT = 10240
LINKS_PAGE_LIMIT = 4096

EMPTY_RESPONSE_MESSAGE = (
    "Microsoft servers gave us an empty response to our request for an "
    "automated download."
)
BLOCKED_MARKER = "We are unable to complete your request at this time."
BLOCKED_MESSAGE = (
    "Microsoft blocked the automated download request based on your IP address."
)

WINDOWS_RELEASES = ("8", "10", "11")
WINDOWS_LANGUAGES = (
    "English (United States)",
    "English International",
    "Arabic",
    "Brazilian Portuguese",
    "Chinese (Simplified)",
    "Chinese (Traditional)",
    "Dutch",
    "French",
    "French Canadian",
    "German",
    "Italian",
    "Japanese",
    "Korean",
    "Polish",
    "Portuguese",
    "Russian",
    "Spanish",
    "Spanish (Mexico)",
    "Swedish",
    "Turkish",
    "Ukrainian",
)

_PRODUCT_ID = re.compile(r'option value="([^"]+)">Windows')
_DOWNLOAD_LINK = re.compile(re.escape(DOWNLOAD_HOST_PREFIX) + r'[^"<\s]*')


def download_page_url(release: str) -> str:
    """Return the software-download page; releases 8 and 10 use the ISO page."""
    url = DOWNLOAD_PAGE_URL.replace("{RELEASE}", release)
    if release in ("8", "10"):
        url += "ISO"
    return url


def browser_user_agent() -> str:
    """Return a desktop Firefox user agent with a random recent version."""
    version = secrets.choice(range(110, 125))
    return (
        f"Mozilla/5.0 (X11; Linux x86_64; rv:{version}.0) "
        f"Gecko/20100101 Firefox/{version}.0"
    )


def parse_product_id(page: str) -> str:
    """Find the product edition ID in the download page's ``<option>`` list.

    Raises:
        SourceError: If no Windows option is present.
    """
    match = _PRODUCT_ID.search(page[:DOWNLOAD_PAGE_LIMIT])
    if match is None:
        raise SourceError(
            "Unable to find a Windows product ID on the download page",
            code=URL_LOOKUP_FAILED,
        )
    return match.group(1)


def parse_sku_id(table: str, language: str) -> str:
    """Pick the SKU ID of ``language`` from the SKU table.

    Each SKU sits on its own line as HTML-escaped JSON; the ID is the
    second quoted value.

    Raises:
        SourceError: If the language is not offered.
    """
    for line in table[:SKU_TABLE_LIMIT].splitlines():
        if language not in line:
            continue
        parts = line.split("&quot;")
        if len(parts) > 3:
            return parts[3]
    raise SourceError(
        f"No Windows download is offered in {language}", code=URL_LOOKUP_FAILED
    )


def parse_download_link(page: str) -> str:
    """Extract the ISO address from the download links response.

    Raises:
        SourceError: If the response is empty, the request was blocked, or
            no download address is present.
    """
    page = page[:LINKS_PAGE_LIMIT]
    if not page.strip():
        raise SourceError(EMPTY_RESPONSE_MESSAGE, code=URL_LOOKUP_FAILED)
    if BLOCKED_MARKER in page:
        raise SourceError(BLOCKED_MESSAGE, code=URL_LOOKUP_FAILED)
    links = _DOWNLOAD_LINK.findall(page)
    if not links:
        raise SourceError(
            "Unable to parse the Windows download link", code=URL_LOOKUP_FAILED
        )
    return html.unescape(links[-1])


def _content_url(
    page_id: str, segment: str, action: str, session_id: str, **params: str
) -> str:
    query = "&".join(f"{key}={value}" for key, value in params.items())
    return (
        f"{CONTENT_URL}?pageId={page_id}&host=www.microsoft.com"
        f"&segments=software-download,{segment}&query=&action={action}"
        f"&sessionId={session_id}&{query}&sdVersion=2"
    )


def windows_urls(
    fetcher: PageFetcher, release: str, edition: str, arch: str
) -> list[str]:
    """Resolve the Windows ISO plus drivers and guest tools.

    Args:
        fetcher: Page fetcher.
        release: Windows release, e.g. '11'.
        edition: Language of the ISO, e.g. 'English International'.
        arch: Unused; only x86_64 media are offered.

    Returns:
        [windows iso, virtio-win iso, three SPICE tool installers].

    Raises:
        SourceError: If any step of the exchange fails.
    """
    page_url = download_page_url(release)
    segment = page_url.rsplit("/", 1)[-1]
    session_id = str(uuid.uuid4())
    headers = {"User-Agent": browser_user_agent(), "Accept": ""}

    page = fetcher.get_text(page_url, headers=headers, use_cache=False)
    product_id = parse_product_id(page)
    logger.debug("Windows %s product edition ID: %s", release, product_id)

    fetcher.request("GET", PERMIT_URL.replace("{SESSION}", session_id), headers=headers)

    post_headers = {**headers, "Referer": page_url}
    sku_table = fetcher.post_text(
        _content_url(
            SKU_PAGE_ID,
            segment,
            "getskuinformationbyproductedition",
            session_id,
            productEditionId=product_id,
        ),
        headers=post_headers,
    )
    sku_id = parse_sku_id(sku_table, edition)
    logger.debug("Windows %s %s SKU ID: %s", release, edition, sku_id)

    links_page = fetcher.post_text(
        _content_url(
            LINKS_PAGE_ID,
            segment,
            "GetProductDownloadLinksBySku",
            session_id,
            skuId=sku_id,
            language="English",
        ),
        headers=post_headers,
    )
    return [parse_download_link(links_page), VIRTIO_WIN_URL, *SPICE_GUEST_TOOLS]


def windows_config(
    paths: Sequence[Path], release: str, edition: str, arch: str
) -> str:
    """Complete quickemu config: install ISO, driver ISO and a TPM.

    Paths are written relative to the directory holding the VM directory,
    where the config itself lives.
    """
    iso, drivers = paths[0], paths[1]
    vm_dir = iso.parent.name
    return (
        'guest_os="windows"\n'
        f'disk_img="{vm_dir}/disk.qcow2"\n'
        f'iso="{vm_dir}/{iso.name}"\n'
        f'fixed_iso="{vm_dir}/{drivers.name}"\n'
        f'arch="{arch}"\n'
        'tpm="on"\n'
        'secureboot="off"\n'
    )


def windows_entries(fetcher: PageFetcher) -> list[CatalogEntry]:
    """Build the Windows entry."""
    return [
        CatalogEntry(
            name="windows",
            pretty_name="Windows",
            homepage="https://www.microsoft.com/software-download/",
            releases=BasicReleases(WINDOWS_RELEASES, WINDOWS_LANGUAGES),
            url=FunctionURL(partial(windows_urls, fetcher)),
            config=OverwriteConfig(windows_config),
        )
    ]


__all__ = [
    "WINDOWS_LANGUAGES",
    "WINDOWS_RELEASES",
    "browser_user_agent",
    "download_page_url",
    "parse_download_link",
    "parse_product_id",
    "parse_sku_id",
    "windows_config",
    "windows_entries",
    "windows_urls",
]
