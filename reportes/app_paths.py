"""Centralised helpers for the report backend's data directory."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

_APP_ENV_VARS: Iterable[str] = ("LOCALAPPDATA", "APPDATA")
DATA_DIR_ENV_VAR = "REPORTES_DATA_DIR"


def _detect_base_directory() -> Path:
    override = os.environ.get(DATA_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    for env_var in _APP_ENV_VARS:
        value = os.environ.get(env_var)
        if value:
            return Path(value).expanduser().resolve() / "Reportes"
    return Path.home().resolve() / ".reportes"


APP_DIR: Path = _detect_base_directory()


def ensure_directory(path: Path) -> Path:
    """Ensure that ``path`` exists, returning the :class:`~pathlib.Path`."""

    path.mkdir(parents=True, exist_ok=True)
    return path


def data_path(*parts: str, base: Optional[Path] = None) -> Path:
    """Return a path rooted inside ``base`` (default :data:`APP_DIR`).

    The parent directory of the returned path is created on demand so callers
    can open the file for writing straight away.
    """

    root = ensure_directory(base or APP_DIR)
    target = root.joinpath(*parts)
    if target.parent and not target.parent.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
    return target


__all__ = [
    "APP_DIR",
    "DATA_DIR_ENV_VAR",
    "data_path",
    "ensure_directory",
]
