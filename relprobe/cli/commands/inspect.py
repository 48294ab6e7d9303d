import asyncio
import json
from typing import List, Optional, Union

import httpx
import typer
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TransferSpeedColumn
from rich.table import Table

from relprobe.internal.config import Settings, load_settings
from relprobe.internal.constants import SUPPORTED_HASHES
from relprobe.internal.errors import ArchiveCorruptError, ConfigurationError, RelprobeError
from relprobe.internal.logging import get_logger
from relprobe.kernel.classifier import classify
from relprobe.kernel.contracts import ArchiveFormat, DownloadResult
from relprobe.kernel.pipeline import DownloadPipeline
from relprobe.kernel.serializer import DecodeSerializer
from relprobe.kernel.tokens import FORMAT_SUFFIXES

logger = get_logger(__name__)
console = Console()
err_console = Console(stderr=True)


def asset_name_from_url(url: str) -> str:
    """Last path segment of `url`, percent-decoded."""
    return httpx.URL(url).path.rstrip("/").rsplit("/", 1)[-1]


def infer_format(url: str) -> Optional[ArchiveFormat]:
    """
    Archive format named by the URL's filename. Names the classifier cannot
    read still get their format from a known suffix.
    """
    filename = asset_name_from_url(url)
    info = classify(filename)
    if info.format is not None:
        return info.format

    lowered = filename.lower()
    for suffix in sorted(FORMAT_SUFFIXES, key=len, reverse=True):
        if lowered.endswith(suffix):
            return FORMAT_SUFFIXES[suffix]
    return None


async def inspect_urls(
    urls: List[str],
    format_hint: Optional[ArchiveFormat],
    settings: Settings,
    expected_size: Optional[int] = None,
    show_progress: bool = True,
) -> list[Union[DownloadResult, BaseException]]:
    """
    Runs every URL through one pipeline concurrently. The xz decode step is
    shared, so at most one tar.xz listing runs at a time across all of them.
    Failures are returned in place of results.
    """
    pipeline = DownloadPipeline(serializer=DecodeSerializer(), settings=settings)

    progress = Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=err_console,
        disable=not show_progress,
        transient=True,
    )

    async def run_one(url: str) -> DownloadResult:
        task_id = progress.add_task(asset_name_from_url(url) or url, total=expected_size)

        def on_content_length(length: Optional[int]) -> None:
            # An explicit --size wins over what the server announces.
            if expected_size is None and length is not None:
                progress.update(task_id, total=length)

        def on_progress(read: int) -> None:
            progress.update(task_id, completed=read)

        return await pipeline.fetch_and_inspect(
            url,
            format_hint or infer_format(url),
            on_progress if show_progress else None,
            on_content_length if show_progress else None,
        )

    with progress:
        return await asyncio.gather(*(run_one(url) for url in urls), return_exceptions=True)


def _result_payload(url: str, outcome: Union[DownloadResult, BaseException]) -> dict:
    if isinstance(outcome, BaseException):
        payload = {"url": url, "error": str(outcome), "error_type": type(outcome).__name__}
        if isinstance(outcome, ArchiveCorruptError) and outcome.digest:
            payload["digest"] = outcome.digest
        return payload

    return {
        "url": url,
        "digest": outcome.digest,
        "hash_algorithm": outcome.hash_algorithm,
        "size": outcome.size,
        "archive_member_names": (
            list(outcome.archive_member_names) if outcome.archive_member_names is not None else None
        ),
    }


def _print_result(url: str, result: DownloadResult) -> None:
    table = Table(title=asset_name_from_url(url) or url, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", overflow="fold")
    table.add_row("URL", url)
    table.add_row("Size", f"{result.size} bytes")
    table.add_row(result.hash_algorithm, result.digest)
    if result.archive_member_names is None:
        table.add_row("Members", "(not an archive)")
    else:
        table.add_row("Members", "\n".join(result.archive_member_names) or "(empty)")
    console.print(table)


def inspect(
    urls: List[str] = typer.Argument(..., help="URLs of the artifacts to download."),
    archive_format: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        help="Archive format of every URL (e.g. tar.gz, zip). Inferred from each URL's filename by default.",
    ),
    size: Optional[int] = typer.Option(
        None, "--size", min=0, help="Expected size in bytes for the progress bar. Defaults to the announced Content-Length."
    ),
    hash_algorithm: Optional[str] = typer.Option(
        None, "--hash", help=f"Digest algorithm: {' or '.join(SUPPORTED_HASHES)}. Defaults to RELPROBE_HASH or blake3."
    ),
    show_progress: bool = typer.Option(True, "--progress/--no-progress", help="Show download progress on stderr."),
    as_json: bool = typer.Option(False, "--json", help="Print the results as JSON."),
):
    """
    Download artifacts once each, printing their digest and archive contents.
    """
    format_hint = None
    if archive_format is not None:
        format_hint = ArchiveFormat.coerce(archive_format)
        if format_hint is None:
            raise typer.BadParameter(f"Unknown archive format: {archive_format!r}", param_hint="--format")

    try:
        settings = load_settings(hash_algorithm=hash_algorithm)
    except ConfigurationError as e:
        typer.echo(typer.style(str(e), fg=typer.colors.RED), err=True)
        raise typer.Exit(2)

    outcomes = asyncio.run(
        inspect_urls(
            urls,
            format_hint,
            settings,
            expected_size=size,
            show_progress=show_progress and not as_json,
        )
    )

    failures = 0
    for url, outcome in zip(urls, outcomes):
        if isinstance(outcome, BaseException):
            failures += 1
            if not isinstance(outcome, RelprobeError):
                logger.error("unexpected inspect failure", url=url, error=str(outcome), error_type=type(outcome).__name__)

    if as_json:
        typer.echo(json.dumps([_result_payload(url, outcome) for url, outcome in zip(urls, outcomes)], indent=2))
    else:
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, BaseException):
                typer.echo(typer.style(f"✗ {url}: {outcome}", fg=typer.colors.RED), err=True)
                if isinstance(outcome, ArchiveCorruptError) and outcome.digest:
                    typer.echo(f"  digest: {outcome.digest}", err=True)
            else:
                _print_result(url, outcome)

    if failures:
        raise typer.Exit(1)
