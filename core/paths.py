from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

__all__ = [
    "BACKUPS_DIRNAME",
    "LRM_DIRNAME",
    "ensure_lrm_structure",
    "get_backup_dir",
    "get_backups_root",
    "get_default_settings_paths",
    "get_logs_dir",
    "get_lrm_dir",
    "resolve_base_path",
    "tracked_name",
]

LRM_DIRNAME = ".lrm"
BACKUPS_DIRNAME = "backups"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def resolve_base_path(explicit: Optional[str | os.PathLike[str]] = None) -> Path:
    """Resolve the resource project directory.

    Order: explicit argument, ``LRM_PATH`` environment variable, current
    working directory.
    """

    if explicit is not None:
        return _expand_path(str(explicit))
    env_path = os.environ.get("LRM_PATH")
    if env_path and env_path.strip():
        return _expand_path(env_path)
    return Path.cwd().resolve()


def tracked_name(file_name: str) -> str:
    """Return ``file_name`` if it is a bare file name usable as a history key."""

    name = str(file_name).strip()
    if not name or name in {".", ".."} or Path(name).name != name or "\\" in name:
        raise ValueError(f"not a bare file name: {file_name!r}")
    return name


def get_lrm_dir(base_path: Path) -> Path:
    return Path(base_path) / LRM_DIRNAME


def get_backups_root(base_path: Path) -> Path:
    return get_lrm_dir(base_path) / BACKUPS_DIRNAME


def get_backup_dir(base_path: Path, file_name: str) -> Path:
    return get_backups_root(base_path) / tracked_name(file_name)


def get_logs_dir(base_path: Path) -> Path:
    return get_lrm_dir(base_path) / "logs"


def ensure_lrm_structure(base_path: Path) -> None:
    for directory in (
        get_lrm_dir(base_path),
        get_backups_root(base_path),
        get_logs_dir(base_path),
    ):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(base_path: Path) -> list[Path]:
    """Return the search order for settings files."""

    return [Path(base_path) / "lrm.json", get_lrm_dir(base_path) / "settings.json"]
