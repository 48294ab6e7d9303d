import json
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from relprobe.internal.logging import get_logger
from relprobe.kernel.classifier import expand_platform_selectors, partition_assets

logger = get_logger(__name__)
console = Console()


def classify(
    filenames: List[str] = typer.Argument(..., help="Release asset filenames to classify."),
    platforms: Optional[List[str]] = typer.Option(
        None,
        "--platform",
        "-p",
        help="Keep only assets for these platforms: all, an OS, an architecture or an os-arch pair. Repeatable.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    """
    Group release asset filenames by logical name, platform and archive format.
    """
    try:
        selected = expand_platform_selectors(platforms or ["all"])
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--platform")

    partition = partition_assets(filenames, selected)
    logger.info(
        "assets classified",
        total=len(filenames),
        names=len(partition.by_name),
        unknown=len(partition.unknown),
    )

    if as_json:
        payload = {
            "assets": {
                name: [
                    {
                        "filename": asset.filename,
                        "version": asset.info.version,
                        "platform": str(asset.info.platform),
                        "format": str(asset.info.format) if asset.info.format else None,
                    }
                    for asset in assets
                ]
                for name, assets in partition.by_name.items()
            },
            "unknown": partition.unknown,
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    if partition.by_name:
        table = Table(title="Release assets")
        table.add_column("Name", style="cyan")
        table.add_column("Version")
        table.add_column("Platform", style="green")
        table.add_column("Format")
        table.add_column("Asset", overflow="fold")

        for name, assets in sorted(partition.by_name.items()):
            for asset in assets:
                table.add_row(
                    name,
                    asset.info.version or "-",
                    str(asset.info.platform),
                    str(asset.info.format) if asset.info.format else "-",
                    asset.filename,
                )
        console.print(table)
    else:
        typer.echo("No assets matched the selected platforms.")

    if partition.unknown:
        typer.echo(typer.style("Unrecognized assets:", fg=typer.colors.YELLOW))
        for filename in partition.unknown:
            typer.echo(f"  {filename}")
