"""Fetch module.

This module handles:
- Fetching and caching small metadata pages
- Downloading fetch targets in order with progress reporting
- Digest and chunklist verification of downloaded artifacts
- Writing the quickemu VM configuration
"""

from quickget.fetch.checksums import (
    compute_file_digest,
    guess_algorithm,
    parse_checksum_line,
    verify_file,
)
from quickget.fetch.chunklist import verify_chunklist, verify_chunklist_paths
from quickget.fetch.download import (
    CheckResult,
    DownloadResult,
    check_target,
    check_targets,
    download_file,
)
from quickget.fetch.http import PageCache, PageFetcher, create_client
from quickget.fetch.pipeline import (
    acquire,
    download_targets,
    emit_config,
    verify_after,
    vm_dir_name,
)
from quickget.fetch.vmconfig import config_path_for, render_config, write_config

__all__ = [
    # HTTP
    "PageCache",
    "PageFetcher",
    "create_client",
    # Checksums
    "compute_file_digest",
    "guess_algorithm",
    "parse_checksum_line",
    "verify_chunklist",
    "verify_chunklist_paths",
    "verify_file",
    # Downloads
    "CheckResult",
    "DownloadResult",
    "check_target",
    "check_targets",
    "download_file",
    # Config
    "config_path_for",
    "render_config",
    "write_config",
    # Pipeline
    "acquire",
    "download_targets",
    "emit_config",
    "verify_after",
    "vm_dir_name",
]
