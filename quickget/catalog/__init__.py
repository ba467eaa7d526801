"""Catalog module.

This module handles:
- The catalog entry model and its four strategy families
- Resolving user requests against the catalog with diagnostics
- Listing every (entry, release, edition) combination
"""

from quickget.catalog.listing import CatalogRow, catalog_rows, render_rows
from quickget.catalog.models import (
    AdditiveConfig,
    BasicReleases,
    CatalogEntry,
    DefaultConfig,
    FormatURL,
    FunctionURL,
    HeadersURL,
    NoChecksum,
    OnlineBasicReleases,
    OnlineUniqueReleases,
    OverwriteConfig,
    PostVerifyChecksum,
    PrefetchChecksum,
    UniqueReleases,
    derive_filename,
)
from quickget.catalog.resolver import (
    Diagnostic,
    ResolutionError,
    format_releases,
    list_names,
    resolve,
)

__all__ = [
    # Models
    "AdditiveConfig",
    "BasicReleases",
    "CatalogEntry",
    "DefaultConfig",
    "FormatURL",
    "FunctionURL",
    "HeadersURL",
    "NoChecksum",
    "OnlineBasicReleases",
    "OnlineUniqueReleases",
    "OverwriteConfig",
    "PostVerifyChecksum",
    "PrefetchChecksum",
    "UniqueReleases",
    "derive_filename",
    # Resolver
    "Diagnostic",
    "ResolutionError",
    "format_releases",
    "list_names",
    "resolve",
    # Listing
    "CatalogRow",
    "catalog_rows",
    "render_rows",
]
