from pathlib import Path
from typing import Optional

import typer

from relprobe.cli.commands import classify, inspect, version
from relprobe.internal import paths
from relprobe.internal.logging import setup_logging

app = typer.Typer(
    name="relprobe",
    help="Classify release assets and fetch, hash and list the contents of artifacts.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr as well as the log file."),
    log_level: str = typer.Option("INFO", "--log-level", help="Minimum level for log output."),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Write logs here instead of the app data directory."),
):
    setup_logging(
        log_level_name="DEBUG" if verbose else log_level,
        log_file_path=Path(log_file) if log_file else paths.get_log_file(),
        console_output=verbose,
    )


app.command("classify")(classify.classify)
app.command("inspect")(inspect.inspect)
app.command("version")(version.version)

if __name__ == "__main__":
    app()
