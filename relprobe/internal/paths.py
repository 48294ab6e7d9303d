import os
from pathlib import Path

from relprobe.internal.constants import APP_NAME, ENV_PREFIX, LOG_FILE_NAME


# ---------------------------------------------------------------------
# Base directories
# ---------------------------------------------------------------------

def get_app_data_dir() -> Path:
    """
    Returns the application data directory.

    - RELPROBE_HOME, when set
    - Windows: %APPDATA%\\relprobe
    - Linux/macOS: ~/.relprobe
    """
    override = os.environ.get(f"{ENV_PREFIX}HOME")
    if override:
        path = Path(override)
    elif os.name == "nt":
        base = os.environ.get("APPDATA", str(Path.home()))
        path = Path(base) / APP_NAME
    else:
        path = Path.home() / f".{APP_NAME}"

    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_dir() -> Path:
    path = get_app_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_file() -> Path:
    """
    Rotating JSON log written by the CLI.
    """
    return get_log_dir() / LOG_FILE_NAME
