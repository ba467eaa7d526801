"""Built-in catalog sources.

Each source module exposes a ``*_entries(fetcher)`` function returning
catalog entries whose strategies share the given page fetcher, so metadata
pages are fetched at most once per run.
"""

from quickget.catalog.models import CatalogEntry
from quickget.fetch.http import PageFetcher
from quickget.sources.basic import basic_entries
from quickget.sources.fedora import fedora_entries
from quickget.sources.macos import macos_entries
from quickget.sources.ubuntu import ubuntu_entries
from quickget.sources.windows import windows_entries


def build_catalog(fetcher: PageFetcher) -> list[CatalogEntry]:
    """Assemble the built-in catalog in resolution order.

    Args:
        fetcher: Page fetcher shared by every online strategy.

    Returns:
        Ordered catalog entries.
    """
    return [
        *ubuntu_entries(fetcher),
        *fedora_entries(fetcher),
        *basic_entries(fetcher),
        *macos_entries(fetcher),
        *windows_entries(fetcher),
    ]


__all__ = [
    "basic_entries",
    "build_catalog",
    "fedora_entries",
    "macos_entries",
    "ubuntu_entries",
    "windows_entries",
]
