"""Build fetchers by strategy name."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Union

from pagefetch.config.loader import FetchSettings
from pagefetch.core.errors import ConfigurationError
from pagefetch.fetchers.browser import BrowserFetcher
from pagefetch.fetchers.direct import DirectFetcher


class FetcherType(str, Enum):
    """Available fetch strategies."""

    BASE = "Base"
    CHROME = "Chrome"

    @classmethod
    def parse(cls, value: Union[str, "FetcherType"]) -> "FetcherType":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        try:
            return _ALIASES[normalized]
        except KeyError as exc:
            raise ConfigurationError(f"Unsupported fetcher type: {value!r}") from exc


_ALIASES = {
    "base": FetcherType.BASE,
    "direct": FetcherType.BASE,
    "chrome": FetcherType.CHROME,
    "browser": FetcherType.CHROME,
}


def select_fetcher(
    kind: Union[str, FetcherType],
    *,
    logger: logging.Logger,
    settings: FetchSettings | None = None,
) -> Union[DirectFetcher, BrowserFetcher]:
    """Return a new fetcher for `kind`; unknown kinds raise ConfigurationError."""

    fetcher_type = FetcherType.parse(kind)
    options = (settings or FetchSettings()).model_dump()
    if fetcher_type is FetcherType.BASE:
        return DirectFetcher.from_options(logger, options=options)
    return BrowserFetcher.from_options(logger, options=options)
