"""Strategy-agnostic description of a document to retrieve."""

from __future__ import annotations

import string
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import SplitResult, unquote_plus, urlencode, urlsplit

from pagefetch.core.errors import BadRequestError, MalformedFormDataError

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_TRAILING = string.whitespace + "/"


@dataclass(frozen=True, slots=True)
class Request:
    """What to fetch and how.

    The URL is not validated here; fetchers call `validated_url()` at their boundary,
    so a Request may hold an invalid URL until it is used.
    """

    url: str
    method: str = "GET"
    form_data: str = ""
    user_token: str = ""
    infinite_scroll: bool = False
    type: str = ""

    def normalized_url(self) -> str:
        """Return the URL without surrounding whitespace or trailing slashes."""

        return self.url.strip().rstrip(_TRAILING)

    def validated_url(self) -> str:
        """Return the normalized URL, raising BadRequestError unless it is absolute."""

        url = self.normalized_url()
        parts = _split(url)
        if not parts.scheme or not parts.netloc or any(ch.isspace() for ch in url):
            raise BadRequestError(f"Malformed URL {url!r}: expected an absolute URI", url=url)
        return url

    def host(self) -> str:
        """Return the network authority of the normalized URL."""

        return _split(self.normalized_url()).netloc

    @property
    def http_method(self) -> str:
        return (self.method or "GET").strip().upper() or "GET"

    def form_pairs(self) -> list[tuple[str, str]]:
        """Parse form data into ordered (key, value) pairs.

        Empty segments are skipped; a segment without `=` is rejected.
        """

        pairs: list[tuple[str, str]] = []
        for segment in self.form_data.split("&"):
            if not segment:
                continue
            key, sep, value = segment.partition("=")
            if not sep:
                raise MalformedFormDataError(
                    f"Form data pair {segment!r} has no '=' separator",
                    url=self.normalized_url(),
                )
            pairs.append((unquote_plus(key), unquote_plus(value)))
        return pairs

    def encoded_form(self) -> str:
        """URL-encode the parsed form pairs, preserving their order."""

        return urlencode(self.form_pairs())

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Request:
        """Build a Request from its JSON shape (camelCase keys)."""

        url = payload.get("url")
        if not isinstance(url, str):
            raise ValueError("Request payload requires a string 'url'.")
        infinite_scroll = payload.get("infiniteScroll", False)
        if infinite_scroll is None:
            infinite_scroll = False
        if not isinstance(infinite_scroll, bool):
            raise ValueError("Request payload 'infiniteScroll' must be a boolean.")
        return cls(
            url=url,
            method=str(payload.get("method") or "GET"),
            form_data=str(payload.get("formData") or ""),
            user_token=str(payload.get("userToken") or ""),
            infinite_scroll=infinite_scroll,
            type=str(payload.get("type") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "url": self.url,
            "method": self.method,
            "userToken": self.user_token,
            "infiniteScroll": self.infinite_scroll,
        }
        if self.form_data:
            payload["formData"] = self.form_data
        return payload


def _split(url: str) -> SplitResult:
    # urlsplit defers port parsing; touching it rejects authorities like `host:abc`.
    try:
        parts = urlsplit(url)
        parts.port
    except ValueError as exc:
        raise BadRequestError(f"Malformed URL {url!r}: {exc}", url=url) from exc
    return parts
