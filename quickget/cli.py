"""Thin CLI wrapper for quickget.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from quickget import __version__
from quickget.catalog.listing import catalog_rows, render_rows
from quickget.catalog.resolver import ResolutionError, resolve
from quickget.config import get_settings, print_settings_json
from quickget.errors import QuickgetError, VerificationError
from quickget.fetch.download import check_targets
from quickget.fetch.http import PageCache, PageFetcher, create_client
from quickget.fetch.pipeline import acquire, vm_dir_name
from quickget.sources import build_catalog
from quickget.types import FetchTarget, ListFormat, VerificationResult

app = typer.Typer(
    name="quickget",
    help="Download operating system images and create quickemu VM configurations",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def setup_logging(level: str) -> None:
    """Route quickget's log records to a Rich handler on stderr."""
    package_logger = logging.getLogger("quickget")
    package_logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(console=err_console, show_path=False, markup=False)
        )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"quickget version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """quickget - download OS images and create quickemu VM configurations."""
    settings = get_settings()
    setup_logging("DEBUG" if verbose else settings.log_level)


def _print_plain(text: str) -> None:
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]ERROR! {message}[/red]", highlight=False)
    raise typer.Exit(code=1)


@app.command()
def get(
    os_name: Annotated[
        str,
        typer.Argument(metavar="OS", help="Operating system, e.g. ubuntu"),
    ] = "",
    release: Annotated[
        str,
        typer.Argument(help="Release, e.g. 24.04"),
    ] = "",
    edition: Annotated[
        str,
        typer.Argument(help="Edition, where the OS has them"),
    ] = "",
    arch: Annotated[
        str | None,
        typer.Option("--arch", "-a", help="Architecture (defaults to the host's)"),
    ] = None,
    directory: Annotated[
        Path | None,
        typer.Option("--dir", "-d", help="Parent directory for the VM directory"),
    ] = None,
    url_only: Annotated[
        bool,
        typer.Option("--url-only", help="Print download URLs without downloading"),
    ] = False,
    check: Annotated[
        bool,
        typer.Option("--check", help="Check that download URLs are reachable"),
    ] = False,
) -> None:
    """Download an operating system image and create its VM configuration.

    Run without a release (or edition) to list the valid choices.
    """
    settings = get_settings()
    base_dir = directory or settings.download_dir

    with (
        create_client(settings) as client,
        ThreadPoolExecutor(
            max_workers=settings.max_concurrent_lookups,
            thread_name_prefix="quickget-lookup",
        ) as executor,
    ):
        fetcher = PageFetcher(client, PageCache(settings.page_cache_max_bytes))
        catalog = build_catalog(fetcher)

        try:
            entry = resolve(
                catalog,
                os_name,
                release=release,
                edition=edition,
                arch=arch or "",
                default_arch=settings.default_arch,
                executor=executor,
            )
        except ResolutionError as e:
            err_console.print(
                f"[red]ERROR! {e.diagnostic.message}[/red]", highlight=False
            )
            if e.diagnostic.choices:
                _print_plain(e.diagnostic.choices)
            raise typer.Exit(code=1) from None
        except QuickgetError as e:
            _fail(e.message)

        if url_only or check:
            try:
                targets = entry.fetch_targets(release, edition, entry.arch)
            except QuickgetError as e:
                _fail(e.message)

            if url_only:
                for target in targets:
                    _print_plain(f"{target.url} -> {target.filename}")
                return

            results = check_targets(client, targets)
            for checked in results:
                if checked.ok:
                    console.print(
                        f"[green]✓[/green] {checked.target.url} ({checked.status_code})",
                        highlight=False,
                    )
                else:
                    reason = checked.error or f"HTTP {checked.status_code}"
                    console.print(
                        f"[red]✗[/red] {checked.target.url} ({reason})", highlight=False
                    )
            if not all(checked.ok for checked in results):
                raise typer.Exit(code=1)
            return

        destination = base_dir / vm_dir_name(entry.name, release, edition)
        title = " ".join(part for part in (entry.pretty_name, release, edition) if part)
        console.print(f"[bold]Downloading {title}[/bold]", highlight=False)

        def warn(message: str) -> None:
            err_console.print(f"[yellow]WARNING! {message}[/yellow]", highlight=False)

        try:
            with Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                TimeRemainingColumn(),
                console=err_console,
            ) as progress:

                def progress_factory(target: FetchTarget):
                    task_id = progress.add_task(target.filename, total=None)

                    def update(received: int, total: int | None) -> None:
                        progress.update(task_id, completed=received, total=total)

                    return update

                result = acquire(
                    client,
                    entry,
                    release,
                    edition,
                    entry.arch,
                    destination,
                    base_dir=base_dir,
                    progress_factory=progress_factory,
                    warn=warn,
                    strict=settings.strict_verification,
                    timeout=settings.download_timeout,
                )
        except VerificationError as e:
            err_console.print(f"[red]ERROR! {e.message}[/red]", highlight=False)
            err_console.print(f"Downloaded files were kept in {destination}")
            raise typer.Exit(code=1) from None
        except QuickgetError as e:
            _fail(e.message)

    for path in result.paths:
        console.print(f"  File: {path}", highlight=False)
    outcome = result.checksum
    if outcome.result == VerificationResult.MATCH:
        console.print(
            f"[green]✓ Verified ({outcome.algorithm})[/green]", highlight=False
        )
    elif outcome.result == VerificationResult.MISMATCH:
        console.print(f"[yellow]! {outcome.message}[/yellow]", highlight=False)
    if result.config_path is not None:
        console.print(f"[green]✓ Config: {result.config_path}[/green]", highlight=False)


@app.command("list")
def list_catalog(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List every supported OS, release and edition as CSV or JSON."""
    settings = get_settings()

    with (
        create_client(settings) as client,
        ThreadPoolExecutor(
            max_workers=settings.max_concurrent_lookups,
            thread_name_prefix="quickget-lookup",
        ) as executor,
    ):
        fetcher = PageFetcher(client, PageCache(settings.page_cache_max_bytes))
        try:
            rows = catalog_rows(build_catalog(fetcher), executor=executor)
        except QuickgetError as e:
            _fail(e.message)

    fmt = ListFormat.JSON if json_output else ListFormat.CSV
    _print_plain(render_rows(rows, fmt))


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        _print_plain(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Download directory:  {settings.download_dir}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Default arch:        {settings.default_arch}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Strict verification: {settings.strict_verification}")
        console.print(f"  User agent:          {settings.user_agent}")
        console.print()
        console.print("[bold]Caching and concurrency:[/bold]")
        console.print(f"  Page cache limit:    {settings.page_cache_max_bytes} bytes")
        console.print(f"  Max lookups:         {settings.max_concurrent_lookups}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Request timeout:     {settings.request_timeout}")
        console.print(f"  Download timeout:    {settings.download_timeout}")


if __name__ == "__main__":
    app()
