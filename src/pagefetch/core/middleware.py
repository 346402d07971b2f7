"""Logging wrapper around any fetcher."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from http.cookiejar import CookieJar

from pagefetch.core.errors import FetchError
from pagefetch.core.fetcher import CookieJarBindable, Fetcher
from pagefetch.core.request import Request
from pagefetch.core.streams import ContentStream


@dataclass(slots=True)
class LoggingFetcher:
    """Emit one log record per fetch call with its outcome and duration."""

    inner: Fetcher
    logger: logging.Logger

    async def fetch(self, request: Request) -> ContentStream:
        started_at = time.monotonic()
        err = "-"
        try:
            return await self.inner.fetch(request)
        except FetchError as exc:
            err = exc.kind
            raise
        except Exception as exc:
            err = type(exc).__name__
            raise
        finally:
            self.logger.info(
                "function=fetch url=%s err=%s took=%.3fs",
                request.url,
                err,
                time.monotonic() - started_at,
            )

    def get_cookie_jar(self) -> CookieJar | None:
        if isinstance(self.inner, CookieJarBindable):
            return self.inner.get_cookie_jar()
        return None

    def set_cookie_jar(self, jar: CookieJar | None) -> None:
        if isinstance(self.inner, CookieJarBindable):
            self.inner.set_cookie_jar(jar)
