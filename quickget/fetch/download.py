"""Artifact download module.

This module handles:
- Streaming a fetch target to disk with progress reporting
- Probing fetch targets without downloading them (URL check mode)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from quickget.errors import HTTP_ERROR, NETWORK_ERROR, OS_ERROR, TIMEOUT, DownloadError
from quickget.types import FetchTarget

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Timeout for URL checks (seconds)
CHECK_TIMEOUT = 30

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Called with (bytes received so far, total bytes if known)
ProgressCallback = Callable[[int, int | None], None]


@dataclass
class DownloadResult:
    """Result of a single download."""

    path: Path
    size_bytes: int
    total_bytes: int | None = None


@dataclass
class CheckResult:
    """Result of probing one fetch target."""

    target: FetchTarget
    ok: bool
    status_code: int | None = None
    error: str | None = None


def download_file(
    client: httpx.Client,
    target: FetchTarget,
    dest_dir: Path,
    progress: ProgressCallback | None = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Stream a fetch target into ``dest_dir / target.filename``.

    The body is written to a ``.part`` file that is renamed into place once
    complete, so a finalized path always holds a full download.

    Args:
        client: HTTPX client instance.
        target: Address, headers and filename to download.
        dest_dir: Destination directory.
        progress: Optional progress callback.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with the final path and size.

    Raises:
        DownloadError: If the download fails.
    """
    dest_path = dest_dir / target.filename
    part_path = dest_path.with_name(dest_path.name + ".part")
    logger.info("Downloading %s to %s", target.url, dest_path)

    try:
        with client.stream(
            "GET", target.url, headers=target.headers or None, timeout=timeout
        ) as response:
            response.raise_for_status()

            total = response.headers.get("Content-Length")
            total_bytes = int(total) if total and total.isdigit() else None
            received = 0

            dest_dir.mkdir(parents=True, exist_ok=True)
            if progress is not None:
                progress(0, total_bytes)

            with part_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    received += len(chunk)
                    if progress is not None:
                        progress(received, total_bytes)

        part_path.replace(dest_path)

    except httpx.HTTPStatusError as e:
        part_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {target.url}: {e.response.status_code} {e.response.reason_phrase}",
            code=HTTP_ERROR,
        ) from e
    except httpx.TimeoutException as e:
        part_path.unlink(missing_ok=True)
        raise DownloadError(f"Timeout downloading {target.url}", code=TIMEOUT) from e
    except httpx.RequestError as e:
        part_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {target.url}: {e}", code=NETWORK_ERROR
        ) from e
    except OSError as e:
        part_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Unable to write {dest_path}: {e}", code=OS_ERROR
        ) from e

    logger.info("Downloaded %s (%d bytes)", dest_path.name, received)
    return DownloadResult(path=dest_path, size_bytes=received, total_bytes=total_bytes)


def check_target(
    client: httpx.Client,
    target: FetchTarget,
    timeout: float = CHECK_TIMEOUT,
) -> CheckResult:
    """Check a fetch target without downloading its body.

    Opens a streaming GET (some servers reject HEAD) and closes it as soon
    as the status line arrives.

    Args:
        client: HTTPX client instance.
        target: Fetch target to check.
        timeout: Request timeout in seconds.

    Returns:
        CheckResult; network failures are reported, not raised.
    """
    try:
        with client.stream(
            "GET", target.url, headers=target.headers or None, timeout=timeout
        ) as response:
            ok = response.is_success
            logger.debug("Checked %s: %d", target.url, response.status_code)
            return CheckResult(target=target, ok=ok, status_code=response.status_code)
    except httpx.HTTPError as e:
        logger.debug("Check failed for %s: %s", target.url, e)
        return CheckResult(target=target, ok=False, error=str(e))


def check_targets(
    client: httpx.Client,
    targets: list[FetchTarget],
    timeout: float = CHECK_TIMEOUT,
) -> list[CheckResult]:
    """Check every fetch target in order."""
    return [check_target(client, target, timeout=timeout) for target in targets]


__all__ = [
    "CheckResult",
    "DOWNLOAD_CHUNK_SIZE",
    "DownloadResult",
    "ProgressCallback",
    "check_target",
    "check_targets",
    "download_file",
]
