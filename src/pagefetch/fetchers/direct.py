"""Direct HTTP fetcher for pages that need no script execution."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from http.cookiejar import CookieJar
from typing import Any, Dict, Optional

import httpx

from pagefetch.core.errors import BadRequestError, error_for_status
from pagefetch.core.request import FORM_CONTENT_TYPE, Request
from pagefetch.core.streams import ResponseStream


@dataclass(slots=True)
class DirectFetcher:
    """Fetch documents as-is with a single HTTP request.

    The response body is returned live; the caller closes the stream, which also
    closes the client created for the call.
    """

    logger: logging.Logger
    proxy: Optional[str] = None
    timeout: float = 30.0
    jar: Optional[CookieJar] = None
    transport: Optional[httpx.AsyncBaseTransport] = None

    async def fetch(self, request: Request) -> ResponseStream:
        url = request.validated_url()
        method, content, headers = self._request_parts(request)
        started_at = time.monotonic()
        self.logger.debug("Direct fetch start url=%s method=%s", url, method)

        client = self._build_client()
        try:
            http_request = client.build_request(method, url, content=content, headers=headers)
            response = await client.send(http_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            await client.aclose()
            self.logger.warning("Direct fetch failed url=%s error=%s", url, exc)
            raise BadRequestError(f"Request to {url} failed: {exc}", url=url) from exc
        except BaseException:
            await client.aclose()
            raise

        if response.status_code != 200:
            status = response.status_code
            await response.aclose()
            await client.aclose()
            self.logger.warning("Direct fetch url=%s returned HTTP %s", url, status)
            raise error_for_status(status, url)

        self.logger.debug(
            "Direct fetch complete url=%s status=%s elapsed=%.2fs",
            url,
            response.status_code,
            time.monotonic() - started_at,
        )
        return ResponseStream(response, client)

    def _request_parts(self, request: Request) -> tuple[str, Optional[bytes], Dict[str, str]]:
        """Return method, body and headers; any form data forces a POST."""

        if not request.form_data:
            return request.http_method, None, {}
        body = request.encoded_form().encode("utf-8")
        headers = {
            "Content-Type": FORM_CONTENT_TYPE,
            "Content-Length": str(len(body)),
        }
        return "POST", body, headers

    def _build_client(self) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {
            "follow_redirects": True,
            "timeout": self.timeout,
        }
        if self.jar is not None:
            kwargs["cookies"] = self.jar
        if self.transport is not None:
            kwargs["transport"] = self.transport
        elif self.proxy:
            kwargs["proxy"] = self.proxy
        return httpx.AsyncClient(**kwargs)

    def get_cookie_jar(self) -> Optional[CookieJar]:
        return self.jar

    def set_cookie_jar(self, jar: Optional[CookieJar]) -> None:
        self.jar = jar

    @classmethod
    def from_options(
        cls, logger: logging.Logger, *, options: Optional[Dict[str, Any]] = None
    ) -> "DirectFetcher":
        """Create a DirectFetcher from an option dict."""
        opts = options or {}
        return cls(
            logger=logger,
            proxy=opts.get("proxy") or None,
            timeout=float(opts.get("http_timeout", opts.get("timeout", 30.0))),
            transport=opts.get("transport"),
        )
