"""Readable byte streams returned by fetchers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

import httpx

DEFAULT_CHUNK_SIZE = 65536


@runtime_checkable
class ContentStream(Protocol):
    """Forward-only byte stream owned by the caller, who must close it."""

    def aiter_bytes(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Iterate over the remaining content."""

    async def aread(self) -> bytes:
        """Read all remaining content."""

    async def aclose(self) -> None:
        """Release the underlying resources."""


class _StreamContext:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError


class ResponseStream(_StreamContext):
    """Live HTTP response body; closing it also closes the client that produced it."""

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient | None = None) -> None:
        self.response = response
        self._client = client
        self.closed = False

    async def aiter_bytes(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        async for chunk in self.response.aiter_bytes(chunk_size=chunk_size):
            yield chunk

    async def aread(self) -> bytes:
        return await self.response.aread()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.response.aclose()
        finally:
            if self._client is not None:
                await self._client.aclose()


class MarkupStream(_StreamContext):
    """In-memory serialized markup exposed as a non-seekable stream."""

    def __init__(self, markup: str | bytes, encoding: str = "utf-8") -> None:
        self._data = markup.encode(encoding) if isinstance(markup, str) else bytes(markup)
        self._position = 0
        self.closed = False

    def seekable(self) -> bool:
        return False

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed stream.")

    async def aiter_bytes(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        self._check_open()
        while self._position < len(self._data):
            end = self._position + chunk_size
            chunk = self._data[self._position:end]
            self._position = min(end, len(self._data))
            yield chunk

    async def aread(self) -> bytes:
        self._check_open()
        remaining = self._data[self._position:]
        self._position = len(self._data)
        return remaining

    async def aclose(self) -> None:
        self.closed = True
