"""Scripts injected into browser sessions."""

from __future__ import annotations

from importlib import resources
from pathlib import Path

SCROLL_TO_BOTTOM = "scroll2bottom.js"


def script_path(name: str) -> Path:
    """Return the filesystem path of a packaged script."""

    return Path(str(resources.files(__name__).joinpath(name)))
