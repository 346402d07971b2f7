"""Per-user session cookie jars shared across fetch calls."""

from __future__ import annotations

import threading
from http.cookiejar import CookieJar

from pagefetch.core.fetcher import CookieJarBindable


class CookieJarStore:
    """Owns cookie jars keyed by user token and lends them to fetchers."""

    def __init__(self) -> None:
        self._jars: dict[str, CookieJar] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> CookieJar | None:
        with self._lock:
            return self._jars.get(token)

    def bind(self, fetcher: CookieJarBindable, token: str) -> CookieJar | None:
        """Attach the token's jar to the fetcher, creating the jar on first use.

        An empty token is an anonymous session and gets no jar.
        """

        if not token:
            fetcher.set_cookie_jar(None)
            return None
        with self._lock:
            jar = self._jars.get(token)
            if jar is None:
                jar = CookieJar()
                self._jars[token] = jar
        fetcher.set_cookie_jar(jar)
        return jar

    def sync(self, fetcher: CookieJarBindable, token: str) -> None:
        """Store the jar the fetcher currently holds under the token."""

        if not token:
            return
        jar = fetcher.get_cookie_jar()
        if jar is None:
            return
        with self._lock:
            self._jars[token] = jar

    def __len__(self) -> int:
        with self._lock:
            return len(self._jars)
