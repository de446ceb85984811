"""File path resolution using platformdirs.

In dev mode (not frozen), paths resolve relative to the project root so
images land in ``public/assets/ocr-images`` next to the code.
In a frozen build, paths use the platform user data directory.
Environment variables override both.
"""

import os
import sys
from pathlib import Path

import platformdirs

APP_NAME = "docchat"

# Must match the static mount in docchat.api.main
ASSET_SUBPATH = Path("public") / "assets" / "ocr-images"


def is_frozen() -> bool:
    return bool(getattr(sys, "frozen", False))


def get_data_dir() -> Path:
    """Return the directory for persistent data.

    ``DOCCHAT_DATA_DIR`` wins; otherwise the platform user data dir when
    frozen, else the project root.
    """
    override = os.environ.get("DOCCHAT_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    if is_frozen():
        return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))
    return Path(__file__).resolve().parent.parent.parent


def get_asset_root() -> Path:
    """Return the storage root for session assets (``DOCCHAT_ASSET_DIR`` wins)."""
    override = os.environ.get("DOCCHAT_ASSET_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return get_data_dir() / ASSET_SUBPATH


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    for d in [get_data_dir(), get_asset_root()]:
        d.mkdir(parents=True, exist_ok=True)
