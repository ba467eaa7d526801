"""Catalog listing as CSV or JSON.

One row is produced per (entry, release, edition); releases without
editions produce a single row with an empty option.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor

from pydantic import BaseModel, ConfigDict, Field

from quickget.catalog.models import CatalogEntry
from quickget.types import ListFormat, ReleaseEditions

ICON_PNG_TEMPLATE = (
    "https://quickemu-project.github.io/quickemu-icons/png/{OS}/{OS}-quickemu-white-pinkbg.png"
)
ICON_SVG_TEMPLATE = (
    "https://quickemu-project.github.io/quickemu-icons/svg/{OS}/{OS}-quickemu-white-pinkbg.svg"
)

CSV_HEADER = "Display Name,OS,Release,Option,Arch,PNG,SVG"


class CatalogRow(BaseModel):
    """One listing row.

    Serialized with the display aliases ('Display Name', 'OS', ...).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    display_name: str = Field(alias="Display Name")
    os: str = Field(alias="OS")
    release: str = Field(alias="Release")
    option: str = Field(default="", alias="Option")
    arch: str = Field(alias="Arch")
    png: str = Field(alias="PNG")
    svg: str = Field(alias="SVG")

    def to_csv(self) -> str:
        """Render as one comma-separated line."""
        return ",".join(
            [
                self.display_name,
                self.os,
                self.release,
                self.option,
                self.arch,
                self.png,
                self.svg,
            ]
        )


def _rows_for(entry: CatalogEntry, pairs: ReleaseEditions) -> Iterator[CatalogRow]:
    png = ICON_PNG_TEMPLATE.replace("{OS}", entry.name)
    svg = ICON_SVG_TEMPLATE.replace("{OS}", entry.name)
    for release, editions in pairs:
        for edition in editions or [""]:
            yield CatalogRow(
                display_name=entry.pretty_name,
                os=entry.name,
                release=release,
                option=edition,
                arch=entry.arch,
                png=png,
                svg=svg,
            )


def catalog_rows(
    catalog: Sequence[CatalogEntry],
    executor: ThreadPoolExecutor | None = None,
) -> list[CatalogRow]:
    """Enumerate every (entry, release, edition) row in catalog order.

    Args:
        catalog: Ordered catalog entries.
        executor: Optional executor for concurrent online release lookups.

    Returns:
        List of rows.

    Raises:
        SourceError: If any online release lookup fails.
    """
    if executor is not None:
        futures = [executor.submit(entry.collect_releases) for entry in catalog]
        try:
            collected = [future.result() for future in futures]
        finally:
            for future in futures:
                future.cancel()
    else:
        collected = [entry.collect_releases() for entry in catalog]

    rows: list[CatalogRow] = []
    for entry, pairs in zip(catalog, collected, strict=True):
        rows.extend(_rows_for(entry, pairs))
    return rows


def render_rows(rows: Sequence[CatalogRow], fmt: ListFormat = ListFormat.CSV) -> str:
    """Render rows as CSV (with header) or as a JSON array."""
    if fmt == ListFormat.JSON:
        return json.dumps(
            [row.model_dump(by_alias=True) for row in rows], indent=2
        )
    return "\n".join([CSV_HEADER, *(row.to_csv() for row in rows)])


__all__ = [
    "CSV_HEADER",
    "CatalogRow",
    "ICON_PNG_TEMPLATE",
    "ICON_SVG_TEMPLATE",
    "catalog_rows",
    "render_rows",
]
