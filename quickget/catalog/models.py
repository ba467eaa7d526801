"""Catalog entry model and the four per-source strategy families.

A catalog entry bundles an operating system's identity with one strategy of
each kind:

- release enumeration: which (release, editions) pairs exist
- URL resolution: which addresses (and request headers) to download
- checksum: nothing, a digest looked up before download, or a custom
  verification over all downloaded files
- config emission: the generic default, extra lines appended to it, or a
  complete replacement

The set of strategy kinds is closed; sources plug in by supplying plain
callables of the documented shapes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar
from urllib.parse import urlsplit

from quickget.errors import (
    CHECKSUM_LOOKUP_FAILED,
    RELEASE_LOOKUP_FAILED,
    URL_LOOKUP_FAILED,
    ConfigEmissionError,
    SourceError,
)
from quickget.types import (
    FetchTarget,
    ReleaseEditions,
)

logger = logging.getLogger(__name__)

# Trailing path segments ending in one of these are used verbatim as filenames
IMAGE_EXTENSIONS = (
    ".iso",
    ".img",
    ".dmg",
    ".chunklist",
    ".xz",
    ".raw",
    ".zip",
    ".tar",
    ".gz",
    ".msi",
)

BasicReleaseFn = Callable[[str], tuple[Sequence[str], Sequence[str]]]
UniqueReleaseFn = Callable[[str], Sequence[tuple[str, Sequence[str]]]]
UrlFn = Callable[[str, str, str], Sequence[str]]
HeadersUrlFn = Callable[[str, str, str], Sequence[tuple[str, Mapping[str, str]]]]
DigestFn = Callable[[str, str, str], str]
VerifyFn = Callable[[Sequence[Path], str, str, str], bool]
ConfigFn = Callable[[Sequence[Path], str, str, str], str]


def format_template(template: str, release: str, edition: str, arch: str) -> str:
    """Substitute {RELEASE}, {EDITION} and {ARCH} placeholders."""
    return (
        template.replace("{RELEASE}", release)
        .replace("{EDITION}", edition)
        .replace("{ARCH}", arch)
    )


def derive_filename(url: str, name: str, release: str, edition: str) -> str:
    """Pick the local filename for a downloaded address.

    Args:
        url: Download address.
        name: Catalog entry name.
        release: Requested release.
        edition: Requested edition (may be empty).

    Returns:
        The last path segment when it carries a known image extension,
        otherwise ``{name}-{release}[-{edition}].iso``.
    """
    segment = urlsplit(url).path.rsplit("/", 1)[-1]
    if segment and segment.lower().endswith(IMAGE_EXTENSIONS):
        return segment
    if edition:
        return f"{name}-{release}-{edition}.iso"
    return f"{name}-{release}.iso"


def _pairs(raw: Sequence[tuple[str, Sequence[str]]]) -> ReleaseEditions:
    return [(str(release), [str(e) for e in editions]) for release, editions in raw]


# --- Release enumeration -------------------------------------------------


@dataclass(frozen=True)
class BasicReleases:
    """Static releases sharing a single edition list."""

    releases: tuple[str, ...]
    editions: tuple[str, ...] = ()
    is_online: ClassVar[bool] = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "releases", tuple(self.releases))
        object.__setattr__(self, "editions", tuple(self.editions))

    def collect(self, arch: str) -> ReleaseEditions:
        """Return (release, editions) pairs; ``arch`` is unused."""
        return [(release, list(self.editions)) for release in self.releases]


@dataclass(frozen=True)
class UniqueReleases:
    """Static releases, each with its own edition list."""

    pairs: tuple[tuple[str, tuple[str, ...]], ...]
    is_online: ClassVar[bool] = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "pairs",
            tuple((release, tuple(editions)) for release, editions in self.pairs),
        )

    def collect(self, arch: str) -> ReleaseEditions:
        """Return (release, editions) pairs; ``arch`` is unused."""
        return [(release, list(editions)) for release, editions in self.pairs]


@dataclass(frozen=True)
class OnlineBasicReleases:
    """Releases and one shared edition list fetched per architecture."""

    lookup: BasicReleaseFn
    is_online: ClassVar[bool] = True

    def collect(self, arch: str) -> ReleaseEditions:
        """Fetch releases for ``arch``.

        Raises:
            SourceError: If the lookup fails for any reason.
        """
        try:
            releases, editions = self.lookup(arch)
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(
                f"Unable to get releases: {e}", code=RELEASE_LOOKUP_FAILED
            ) from e
        return [(str(release), [str(e) for e in editions]) for release in releases]


@dataclass(frozen=True)
class OnlineUniqueReleases:
    """Per-release edition lists fetched per architecture."""

    lookup: UniqueReleaseFn
    is_online: ClassVar[bool] = True

    def collect(self, arch: str) -> ReleaseEditions:
        """Fetch (release, editions) pairs for ``arch``.

        Raises:
            SourceError: If the lookup fails for any reason.
        """
        try:
            raw = self.lookup(arch)
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(
                f"Unable to get releases: {e}", code=RELEASE_LOOKUP_FAILED
            ) from e
        return _pairs(raw)


ReleaseStrategy = (
    BasicReleases | UniqueReleases | OnlineBasicReleases | OnlineUniqueReleases
)


# --- URL resolution ------------------------------------------------------


@dataclass(frozen=True)
class FormatURL:
    """A single address built from a placeholder template."""

    template: str

    def resolve(
        self, release: str, edition: str, arch: str
    ) -> list[tuple[str, dict[str, str]]]:
        """Return the formatted address with no extra headers."""
        return [(format_template(self.template, release, edition, arch), {})]


@dataclass(frozen=True)
class FunctionURL:
    """Addresses computed by a source function."""

    lookup: UrlFn

    def resolve(
        self, release: str, edition: str, arch: str
    ) -> list[tuple[str, dict[str, str]]]:
        """Call the source function; addresses carry no extra headers."""
        return [(url, {}) for url in self.lookup(release, edition, arch)]


@dataclass(frozen=True)
class HeadersURL:
    """Addresses plus per-request headers computed by a source function."""

    lookup: HeadersUrlFn

    def resolve(
        self, release: str, edition: str, arch: str
    ) -> list[tuple[str, dict[str, str]]]:
        """Call the source function and copy its headers."""
        return [
            (url, dict(headers)) for url, headers in self.lookup(release, edition, arch)
        ]


UrlStrategy = FormatURL | FunctionURL | HeadersURL


# --- Checksums -----------------------------------------------------------


@dataclass(frozen=True)
class NoChecksum:
    """Downloads are not verified."""


@dataclass(frozen=True)
class PrefetchChecksum:
    """A digest obtainable without downloading the artifact."""

    lookup: DigestFn

    def expected_digest(self, release: str, edition: str, arch: str) -> str:
        """Look up the expected digest of the first artifact.

        Raises:
            SourceError: If the digest cannot be retrieved.
        """
        try:
            digest = self.lookup(release, edition, arch)
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(
                f"Unable to get checksum: {e}", code=CHECKSUM_LOOKUP_FAILED
            ) from e
        return digest.strip().lower()


@dataclass(frozen=True)
class PostVerifyChecksum:
    """Custom verification run over every downloaded file."""

    verify: VerifyFn

    def verify_paths(
        self, paths: Sequence[Path], release: str, edition: str, arch: str
    ) -> bool:
        """Run the verifier against the ordered list of downloaded paths."""
        return bool(self.verify(paths, release, edition, arch))


ChecksumStrategy = NoChecksum | PrefetchChecksum | PostVerifyChecksum


# --- Config emission -----------------------------------------------------


@dataclass(frozen=True)
class DefaultConfig:
    """Use the generic quickemu configuration."""


@dataclass(frozen=True)
class AdditiveConfig:
    """Lines appended to the generic configuration."""

    render: ConfigFn

    def extra(
        self, paths: Sequence[Path], release: str, edition: str, arch: str
    ) -> str:
        """Render the appended lines, newline-terminated when non-empty.

        Raises:
            ConfigEmissionError: If the source function fails.
        """
        try:
            addition = self.render(paths, release, edition, arch)
        except Exception as e:
            raise ConfigEmissionError(f"Unable to generate config: {e}") from e
        if addition and not addition.endswith("\n"):
            addition += "\n"
        return addition


@dataclass(frozen=True)
class OverwriteConfig:
    """A complete configuration replacing the generic one."""

    render: ConfigFn

    def build(
        self, paths: Sequence[Path], release: str, edition: str, arch: str
    ) -> str:
        """Render the configuration.

        Raises:
            ConfigEmissionError: If the source function fails.
        """
        try:
            return self.render(paths, release, edition, arch)
        except Exception as e:
            raise ConfigEmissionError(f"Unable to generate config: {e}") from e


ConfigStrategy = DefaultConfig | AdditiveConfig | OverwriteConfig


# --- Catalog entry -------------------------------------------------------


@dataclass(frozen=True)
class CatalogEntry:
    """One acquisition recipe for one operating system at one architecture.

    Attributes:
        name: Machine key (lowercase, no spaces), e.g. 'ubuntu'.
        pretty_name: Display name, e.g. 'Ubuntu'.
        homepage: Project homepage.
        arch: Architecture tag, e.g. 'x86_64'.
        releases: Release-enumeration strategy.
        url: URL-resolution strategy.
        checksum: Checksum strategy.
        config: Config-emission strategy.
    """

    name: str
    pretty_name: str
    homepage: str
    releases: ReleaseStrategy
    url: UrlStrategy
    arch: str = "x86_64"
    checksum: ChecksumStrategy = field(default_factory=NoChecksum)
    config: ConfigStrategy = field(default_factory=DefaultConfig)

    def __post_init__(self) -> None:
        """Validate the machine key."""
        if not self.name or self.name != self.name.lower() or " " in self.name:
            raise ValueError(
                f"Catalog entry name must be lowercase without spaces: {self.name!r}"
            )

    def collect_releases(self) -> ReleaseEditions:
        """Enumerate (release, editions) pairs for this entry's architecture.

        Raises:
            SourceError: If an online lookup fails.
        """
        if self.releases.is_online:
            logger.debug("Fetching releases for %s (%s)", self.name, self.arch)
        return self.releases.collect(self.arch)

    def fetch_targets(
        self, release: str, edition: str, arch: str
    ) -> list[FetchTarget]:
        """Resolve the ordered download targets.

        Raises:
            SourceError: If the URL strategy fails or yields nothing.
        """
        try:
            resolved = self.url.resolve(release, edition, arch)
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(
                f"Unable to get URLs: {e}", code=URL_LOOKUP_FAILED
            ) from e

        if not resolved:
            raise SourceError(
                f"No download URLs found for {self.name} {release} {edition}".rstrip(),
                code=URL_LOOKUP_FAILED,
            )

        return [
            FetchTarget(
                url=url,
                filename=derive_filename(url, self.name, release, edition),
                headers=headers,
            )
            for url, headers in resolved
        ]


__all__ = [
    "IMAGE_EXTENSIONS",
    "AdditiveConfig",
    "BasicReleases",
    "CatalogEntry",
    "ChecksumStrategy",
    "ConfigStrategy",
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
    "ReleaseStrategy",
    "UniqueReleases",
    "UrlStrategy",
    "derive_filename",
    "format_template",
]
