"""Acquisition pipeline.

This module provides the high-level API for acquiring a resolved catalog
entry:
- acquire(): resolve URLs, download, verify and write the VM config
- download_targets(): ordered downloads with first-file checksum comparison
- verify_after(): post-download verification over all files
- emit_config(): render and write the quickemu configuration

Downloads run one at a time on a worker thread. While the first download is
in flight the calling thread looks up its expected digest; the next
download is only submitted once the previous file is finalized, so path
order always matches fetch target order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx

from quickget.catalog.models import CatalogEntry, PostVerifyChecksum, PrefetchChecksum
from quickget.errors import (
    CHECKSUM_MISMATCH,
    VERIFICATION_FAILED,
    ChecksumError,
    SourceError,
    VerificationError,
)
from quickget.fetch.checksums import verify_file
from quickget.fetch.download import DOWNLOAD_TIMEOUT, ProgressCallback, download_file
from quickget.fetch.vmconfig import config_path_for, render_config, write_config
from quickget.types import (
    AcquisitionResult,
    ChecksumOutcome,
    FetchTarget,
    VerificationResult,
)

logger = logging.getLogger(__name__)

# Returns a progress callback for the target about to be downloaded
ProgressFactory = Callable[[FetchTarget], ProgressCallback | None]

# Called with a warning that does not stop the acquisition
WarningCallback = Callable[[str], None]


def vm_dir_name(os: str, release: str, edition: str = "") -> str:
    """Return the VM directory name, ``{os}-{release}[-{edition}]``."""
    if edition:
        return f"{os}-{release}-{edition}"
    return f"{os}-{release}"


def _lookup_digest(
    checksum: PrefetchChecksum,
    release: str,
    edition: str,
    arch: str,
    warn: WarningCallback | None,
) -> tuple[str | None, str | None]:
    """Fetch the expected digest; failures degrade to (None, message)."""
    try:
        return checksum.expected_digest(release, edition, arch), None
    except SourceError as e:
        message = f"{e}. Unable to verify the integrity of the download."
        logger.warning(message)
        if warn is not None:
            warn(message)
        return None, message


def _compare(
    path: Path,
    expected: str | None,
    message: str | None,
    warn: WarningCallback | None,
) -> ChecksumOutcome:
    if expected is None:
        return ChecksumOutcome(
            result=VerificationResult.UNAVAILABLE, message=message
        )
    try:
        matches, algorithm, actual = verify_file(path, expected)
    except ChecksumError as e:
        logger.warning("%s", e)
        if warn is not None:
            warn(str(e))
        return ChecksumOutcome(
            result=VerificationResult.UNAVAILABLE,
            expected=expected,
            message=str(e),
        )

    if matches:
        logger.info("Verified %s (%s)", path.name, algorithm)
        return ChecksumOutcome(
            result=VerificationResult.MATCH,
            algorithm=algorithm,
            expected=expected,
            actual=actual,
        )

    logger.error(
        "Checksum mismatch for %s: expected %s, got %s", path.name, expected, actual
    )
    return ChecksumOutcome(
        result=VerificationResult.MISMATCH,
        algorithm=algorithm,
        expected=expected,
        actual=actual,
        message=f"Checksum mismatch for {path.name}: expected {expected}, got {actual}",
    )


def download_targets(
    client: httpx.Client,
    entry: CatalogEntry,
    targets: Sequence[FetchTarget],
    release: str,
    edition: str,
    arch: str,
    destination: Path,
    progress_factory: ProgressFactory | None = None,
    warn: WarningCallback | None = None,
    executor: ThreadPoolExecutor | None = None,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> tuple[list[Path], ChecksumOutcome]:
    """Download targets in order, comparing the first against its digest.

    Args:
        client: HTTPX client instance.
        entry: Resolved catalog entry.
        targets: Fetch targets, in order.
        release: Requested release.
        edition: Requested edition.
        arch: Requested architecture.
        destination: Directory receiving the downloads.
        progress_factory: Optional progress callback factory.
        warn: Optional callback for non-fatal warnings.
        executor: Executor running the downloads (a single-worker one is
            created if not provided).
        timeout: Download timeout in seconds.

    Returns:
        Tuple of (downloaded paths, pre-fetch checksum outcome).

    Raises:
        DownloadError: If any download fails; later targets are not started.
    """
    paths: list[Path] = []
    outcome = ChecksumOutcome(result=VerificationResult.SKIPPED)
    prefetch = entry.checksum if isinstance(entry.checksum, PrefetchChecksum) else None

    own_executor = executor is None
    pool = executor or ThreadPoolExecutor(
        max_workers=1, thread_name_prefix="quickget-download"
    )
    try:
        for index, target in enumerate(targets):
            progress = progress_factory(target) if progress_factory else None
            future = pool.submit(
                download_file, client, target, destination, progress, timeout
            )

            expected: str | None = None
            message: str | None = None
            if index == 0 and prefetch is not None:
                expected, message = _lookup_digest(prefetch, release, edition, arch, warn)

            result = future.result()
            paths.append(result.path)

            if index == 0 and prefetch is not None:
                outcome = _compare(result.path, expected, message, warn)
    finally:
        if own_executor:
            pool.shutdown(wait=True)

    return paths, outcome


def verify_after(
    entry: CatalogEntry,
    paths: Sequence[Path],
    release: str,
    edition: str,
    arch: str,
) -> ChecksumOutcome | None:
    """Run a post-download verifier, if the entry has one.

    Returns:
        The verification outcome, or None if the entry has no post verifier.
    """
    if not isinstance(entry.checksum, PostVerifyChecksum):
        return None

    logger.info("Verifying %d downloaded file(s) for %s", len(paths), entry.name)
    try:
        verified = entry.checksum.verify_paths(paths, release, edition, arch)
    except OSError as e:
        logger.warning("Unable to verify downloads: %s", e)
        return ChecksumOutcome(
            result=VerificationResult.UNAVAILABLE,
            message=f"Unable to verify downloads: {e}",
        )

    if verified:
        return ChecksumOutcome(result=VerificationResult.MATCH, algorithm="custom")
    return ChecksumOutcome(
        result=VerificationResult.MISMATCH,
        algorithm="custom",
        message=f"Verification of {entry.pretty_name} downloads failed",
    )


def emit_config(
    entry: CatalogEntry,
    destination: Path,
    paths: Sequence[Path],
    release: str,
    edition: str,
    arch: str,
    base_dir: Path,
    shebang: str | None = None,
) -> Path:
    """Render and write the VM configuration.

    Returns:
        Path of the written configuration.

    Raises:
        ConfigEmissionError: If rendering or writing fails.
    """
    text = render_config(
        entry,
        destination,
        paths,
        release,
        edition,
        arch,
        base_dir=base_dir,
        shebang=shebang,
    )
    return write_config(config_path_for(destination, base_dir), text)


def acquire(
    client: httpx.Client,
    entry: CatalogEntry,
    release: str,
    edition: str,
    arch: str,
    destination: Path,
    base_dir: Path | None = None,
    progress_factory: ProgressFactory | None = None,
    warn: WarningCallback | None = None,
    strict: bool = True,
    executor: ThreadPoolExecutor | None = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    shebang: str | None = None,
) -> AcquisitionResult:
    """Acquire a resolved catalog entry.

    This is the main entry point. It:
    1. Resolves fetch targets (failure is fatal)
    2. Downloads them in order, checking the first against a pre-fetch digest
    3. Runs the post-download verifier, if any
    4. Writes the VM configuration

    Args:
        client: HTTPX client instance.
        entry: Resolved catalog entry.
        release: Requested release.
        edition: Requested edition.
        arch: Requested architecture.
        destination: Directory receiving the downloads.
        base_dir: Directory for the config file (destination's parent if None).
        progress_factory: Optional progress callback factory.
        warn: Optional callback for non-fatal warnings.
        strict: Raise before writing the config when verification fails.
        executor: Executor running the downloads.
        timeout: Download timeout in seconds.
        shebang: Override for the quickemu ``#!`` line.

    Returns:
        AcquisitionResult with paths, checksum outcome and config path.

    Raises:
        SourceError: If URL resolution fails.
        DownloadError: If a download fails.
        VerificationError: If strict and verification fails (files are kept).
        ConfigEmissionError: If the configuration cannot be produced.
    """
    if base_dir is None:
        base_dir = destination.parent

    targets = entry.fetch_targets(release, edition, arch)
    logger.info(
        "Acquiring %s %s %s: %d file(s) into %s",
        entry.name,
        release,
        edition,
        len(targets),
        destination,
    )

    paths, outcome = download_targets(
        client,
        entry,
        targets,
        release,
        edition,
        arch,
        destination,
        progress_factory=progress_factory,
        warn=warn,
        executor=executor,
        timeout=timeout,
    )

    post = verify_after(entry, paths, release, edition, arch)
    if post is not None:
        outcome = post

    result = AcquisitionResult(paths=paths, checksum=outcome, targets=list(targets))

    if outcome.failed and strict:
        code = CHECKSUM_MISMATCH if post is None else VERIFICATION_FAILED
        raise VerificationError(outcome.message or "Verification failed", code=code)

    result.config_path = emit_config(
        entry,
        destination,
        paths,
        release,
        edition,
        arch,
        base_dir=base_dir,
        shebang=shebang,
    )
    return result


__all__ = [
    "ProgressFactory",
    "acquire",
    "download_targets",
    "emit_config",
    "verify_after",
    "vm_dir_name",
]
