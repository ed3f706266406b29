"""Platform-specific paths for user data.

Goal: keep user-created playlists and logs out of temp / install folders.

We intentionally avoid extra dependencies (e.g. platformdirs) and rely on
standard environment variables. ``TRACKDECK_DATA_DIR`` overrides the
location everywhere (used by tests and portable installs).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

APP_NAME = "TrackDeck"
DATA_DIR_ENV = "TRACKDECK_DATA_DIR"


def is_windows() -> bool:
    return os.name == "nt"


def is_macos() -> bool:
    return sys.platform == "darwin"


def get_user_data_dir(app_name: str = APP_NAME) -> Path:
    """Return a persistent per-user data directory.

    Windows: %APPDATA%\\TrackDeck
    macOS:   ~/Library/Application Support/TrackDeck
    Other:   $XDG_DATA_HOME/trackdeck or ~/.local/share/trackdeck
    """
    override = os.getenv(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()

    if is_windows():
        base = os.getenv("APPDATA")
        if base:
            return Path(base) / app_name
        return Path.home() / "AppData" / "Roaming" / app_name

    if is_macos():
        return Path.home() / "Library" / "Application Support" / app_name

    xdg = os.getenv("XDG_DATA_HOME")
    base_dir = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base_dir / app_name.lower()


def get_playlists_dir(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "playlists"


def get_log_dir(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "logs"


def ensure_dir(path: Path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
