"""
Utilities for locating the config and cache directories and reading ident lists.
"""

import os
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from pathvalidate import ValidationError, validate_filename

from depot_sync.exceptions import InvalidIdentError

CACHE_ROOT_ENVVAR = "DEPOT_SYNC_CACHE_ROOT"
SYSTEM_CACHE_ROOT = Path("/var/cache/depot-sync")


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "depot-sync"


def get_cache_root(environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Returns the default download root.

    ``DEPOT_SYNC_CACHE_ROOT`` wins; otherwise root uses a system-wide cache and
    everyone else a per-user one.
    """
    environ = os.environ if environ is None else environ
    if override := environ.get(CACHE_ROOT_ENVVAR, "").strip():
        return Path(override).expanduser()
    if os.name != "nt" and hasattr(os, "geteuid") and os.geteuid() == 0:
        return SYSTEM_CACHE_ROOT
    if os.name == "nt":
        base_dir = Path(os.getenv("LOCALAPPDATA", "~\\AppData\\Local"))
    else:
        base_dir = Path(os.getenv("XDG_CACHE_HOME", "~/.cache"))
    return base_dir.expanduser() / "depot-sync"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def checked_filename(name: str) -> str:
    """Rejects names that are not a single, portable file name."""
    try:
        validate_filename(name, platform="universal")
    except ValidationError as e:
        raise InvalidIdentError(f"'{name}' is not a valid file name: {e}") from e
    return name


def parse_ident_lines(lines: Iterable[str]) -> List[str]:
    """Returns non-empty, non-comment lines, stripped."""
    return [
        line.strip()
        for line in lines
        if line.strip() and not line.strip().startswith("#")
    ]


def read_ident_file(path: Path) -> List[str]:
    """Reads a newline-separated list of package identifiers."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_ident_lines(f)
