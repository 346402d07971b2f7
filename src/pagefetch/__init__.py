"""Pagefetch: retrieve remote documents over HTTP or a remotely driven browser."""

from __future__ import annotations

import tomllib
from functools import lru_cache
from importlib import metadata
from pathlib import Path

PROJECT_NAME = "pagefetch"

# src/pagefetch/__init__.py -> repository root
_CHECKOUT_PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


@lru_cache(maxsize=1)
def get_version() -> str:
    """Return the distribution version, or the checkout's version when not installed."""

    try:
        return metadata.version(PROJECT_NAME)
    except metadata.PackageNotFoundError as exc:
        try:
            with _CHECKOUT_PYPROJECT.open("rb") as handle:
                project = tomllib.load(handle).get("project", {})
        except (OSError, tomllib.TOMLDecodeError):
            project = {}
        if project.get("name") == PROJECT_NAME and project.get("version"):
            return str(project["version"])
        raise RuntimeError("Unable to determine pagefetch version.") from exc


__all__ = ["get_version"]
