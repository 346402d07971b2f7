"""Contracts shared by fetch strategies."""

from __future__ import annotations

from http.cookiejar import CookieJar
from typing import Protocol, runtime_checkable

from pagefetch.core.request import Request
from pagefetch.core.streams import ContentStream


@runtime_checkable
class Fetcher(Protocol):
    """Retrieves document content from a remote server.

    Implementations are safe for at most one concurrent call per instance.
    """

    async def fetch(self, request: Request) -> ContentStream:
        """Retrieve the document and return its content stream."""


@runtime_checkable
class CookieJarBindable(Protocol):
    """Fetchers whose transport can borrow a session cookie jar."""

    def get_cookie_jar(self) -> CookieJar | None:
        """Return the currently bound jar, if any."""

    def set_cookie_jar(self, jar: CookieJar | None) -> None:
        """Bind a jar to be used by subsequent calls."""
