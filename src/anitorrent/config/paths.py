"""Per-user file locations."""

from pathlib import Path

import platformdirs

APP_NAME = "anitorrent-cli"


def get_config_dir() -> Path:
    """Directory holding config.json and the token file."""
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_default_download_dir() -> Path:
    return Path(platformdirs.user_data_dir(APP_NAME)) / "downloads"
