"""Configuration settings for quickget.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import platform
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from quickget import __version__

# Machine names reported by the host mapped to catalog architecture tags
_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8": "aarch64",
}


def normalize_arch(machine: str) -> str:
    """Map a host machine name onto the catalog's architecture tags.

    Args:
        machine: Machine name, e.g. from ``platform.machine()``.

    Returns:
        Architecture tag such as 'x86_64', 'aarch64' or 'riscv64'.
    """
    machine = machine.strip().lower()
    return _ARCH_ALIASES.get(machine, machine)


def _default_arch() -> str:
    """Return the architecture of the running host."""
    return normalize_arch(platform.machine()) or "x86_64"


def _default_download_dir() -> Path:
    """Return the default parent directory for VM directories."""
    return Path.cwd()


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the QUICKGET_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUICKGET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    download_dir: Path = Field(
        default_factory=_default_download_dir,
        description="Parent directory for VM directories and generated configs",
    )

    # Resolution
    default_arch: str = Field(
        default_factory=_default_arch,
        description="Architecture assumed when none is requested",
    )

    # Operational modes
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )
    strict_verification: bool = Field(
        default=True,
        description="Abort before writing the config when verification fails",
    )
    user_agent: str = Field(
        default=f"quickget/{__version__}",
        description="User-Agent sent with metadata and download requests",
    )

    # Caching
    page_cache_max_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=0,
        description="Pages larger than this are never stored in the page cache",
    )

    # Concurrency
    max_concurrent_lookups: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Maximum concurrent release lookups across catalog entries",
    )

    # Timeouts (in seconds)
    request_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout for metadata requests",
    )
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for artifact downloads",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "normalize_arch", "print_settings_json"]
