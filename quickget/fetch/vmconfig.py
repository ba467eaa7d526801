"""quickemu VM configuration generation.

The generic configuration names the guest type, the disk image, the
installation media and the architecture. Catalog entries may append lines
to it or replace it outright.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from pathlib import Path

from quickget.catalog.models import (
    AdditiveConfig,
    CatalogEntry,
    OverwriteConfig,
)
from quickget.errors import ConfigEmissionError

logger = logging.getLogger(__name__)

# Entry name -> (quickemu guest_os, media key); anything else is a linux iso
GUEST_TYPES: dict[str, tuple[str, str]] = {
    "batocera": ("batocera", "img"),
    "dragonflybsd": ("dragonflybsd", "iso"),
    "freebsd": ("freebsd", "iso"),
    "ghostbsd": ("freebsd", "iso"),
    "haiku": ("haiku", "iso"),
    "freedos": ("freedos", "iso"),
    "kolibrios": ("kolibrios", "iso"),
    "macos": ("macos", "img"),
    "netbsd": ("netbsd", "iso"),
    "openbsd": ("openbsd", "iso"),
    "openindiana": ("solaris", "iso"),
    "reactos": ("reactos", "iso"),
    "truenas": ("truenas", "iso"),
    "windows": ("windows", "iso"),
}
DEFAULT_GUEST_TYPE = ("linux", "iso")


def guest_type(name: str) -> tuple[str, str]:
    """Return (guest_os, media key) for a catalog entry name."""
    return GUEST_TYPES.get(name, DEFAULT_GUEST_TYPE)


def quickemu_shebang() -> str:
    """Return a ``#!`` line running quickemu when it is on PATH, else ''."""
    quickemu = shutil.which("quickemu")
    if quickemu is None:
        return ""
    return f"#!{quickemu} --vm\n"


def config_path_for(vm_dir: Path, base_dir: Path) -> Path:
    """Return where the config for ``vm_dir`` is written.

    The VM directory's path relative to ``base_dir`` has its separators
    replaced by dots and '.conf' appended, e.g. ``ubuntu-24.04`` ->
    ``base_dir/ubuntu-24.04.conf``.
    """
    try:
        relative = vm_dir.resolve().relative_to(base_dir.resolve())
    except ValueError:
        relative = Path(vm_dir.name)
    stem = relative.as_posix().strip("/").replace("/", ".")
    return base_dir / f"{stem}.conf"


def default_config(
    entry: CatalogEntry,
    vm_dir: Path,
    paths: Sequence[Path],
    base_dir: Path,
) -> str:
    """Render the generic configuration (without shebang).

    Paths are written relative to ``base_dir`` where possible, matching
    where the config file itself lives.
    """
    if not paths:
        raise ConfigEmissionError("Cannot generate a config without downloaded files")
    guest_os, media_key = guest_type(entry.name)
    disk_img = _relative(vm_dir / "disk.qcow2", base_dir)
    media = _relative(Path(paths[0]), base_dir)
    return (
        f'guest_os="{guest_os}"\n'
        f'disk_img="{disk_img}"\n'
        f'{media_key}="{media}"\n'
        f'arch="{entry.arch}"\n'
    )


def render_config(
    entry: CatalogEntry,
    vm_dir: Path,
    paths: Sequence[Path],
    release: str,
    edition: str,
    arch: str,
    base_dir: Path,
    shebang: str | None = None,
) -> str:
    """Produce the configuration text for a completed acquisition.

    Args:
        entry: Resolved catalog entry.
        vm_dir: Directory holding the downloads.
        paths: Downloaded paths, in fetch target order.
        release: Requested release.
        edition: Requested edition.
        arch: Requested architecture.
        base_dir: Directory the config is written to.
        shebang: Override for the quickemu ``#!`` line (detected if None).

    Returns:
        Configuration text.

    Raises:
        ConfigEmissionError: If an additive or overwrite strategy fails.
    """
    if shebang is None:
        shebang = quickemu_shebang()

    strategy = entry.config
    if isinstance(strategy, OverwriteConfig):
        return shebang + strategy.build(paths, release, edition, arch)

    text = shebang + default_config(entry, vm_dir, paths, base_dir)
    if isinstance(strategy, AdditiveConfig):
        text += strategy.extra(paths, release, edition, arch)
    return text


def write_config(config_path: Path, text: str) -> Path:
    """Write the configuration file.

    Raises:
        ConfigEmissionError: If the file cannot be written.
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ConfigEmissionError(f"Unable to write {config_path}: {e}") from e
    logger.info("Wrote VM configuration %s", config_path)
    return config_path


def _relative(path: Path, base_dir: Path) -> str:
    try:
        return path.resolve().relative_to(base_dir.resolve()).as_posix()
    except ValueError:
        return str(path)


__all__ = [
    "DEFAULT_GUEST_TYPE",
    "GUEST_TYPES",
    "config_path_for",
    "default_config",
    "guest_type",
    "quickemu_shebang",
    "render_config",
    "write_config",
]
