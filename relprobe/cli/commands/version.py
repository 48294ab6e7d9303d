import importlib.metadata

import typer

from relprobe import __version__
from relprobe.internal.logging import get_logger

logger = get_logger(__name__)


def version():
    """
    Show the relprobe version.
    """
    try:
        package_version = importlib.metadata.version("relprobe")
    except importlib.metadata.PackageNotFoundError:
        # Running from a source checkout
        logger.debug("package metadata not found", fallback=__version__)
        package_version = __version__

    typer.echo(f"relprobe version: {package_version}")
