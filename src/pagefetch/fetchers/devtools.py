"""Remote debugging session plumbing for the browser fetcher."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Coroutine
from typing import Any, Optional, TypeVar

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from pagefetch.core.errors import DiscoveryError, FetchAbortedError

T = TypeVar("T")

VERSION_PATH = "/json/version"


class FetchScope:
    """Cancellation scope shared by every step of one browser fetch.

    Background listeners report failures through `abort()`; anything awaited via
    `run()` is then cancelled and raises FetchAbortedError. Leaving the scope
    cancels whatever background work is still pending.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self.cause: Optional[BaseException] = None
        self._aborted = asyncio.Event()
        self._background: set[asyncio.Task[Any]] = set()

    async def __aenter__(self) -> FetchScope:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def abort(self, exc: BaseException) -> None:
        if self.cause is None:
            self.cause = exc
            self.logger.warning("Fetch scope aborted: %s", exc)
        self._aborted.set()

    def check(self) -> None:
        if self.aborted:
            raise FetchAbortedError(f"Fetch aborted: {self.cause}") from self.cause

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the scope is aborted first."""

        self.check()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.create_task(self._aborted.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            waiter.cancel()
            await asyncio.gather(task, waiter, return_exceptions=True)
            raise

        if task in done:
            waiter.cancel()
            await asyncio.gather(waiter, return_exceptions=True)
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise FetchAbortedError(f"Fetch aborted: {self.cause}") from self.cause

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run a background listener whose failure aborts the scope."""

        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.abort(exc)

    async def close(self) -> None:
        pending = list(self._background)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


async def run_batch(*awaitables: Awaitable[Any]) -> list[Any]:
    """Run all awaitables concurrently; the first failure cancels the rest and is raised."""

    tasks = [asyncio.ensure_future(item) for item in awaitables]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    for task in tasks:
        if task in done and not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]
    return [task.result() for task in tasks]


async def discover_websocket_url(endpoint: str, client: httpx.AsyncClient) -> str:
    """Ask the remote debugging endpoint for its browser websocket URL."""

    version_url = f"{endpoint.rstrip('/')}{VERSION_PATH}"
    try:
        response = await client.get(version_url)
    except httpx.HTTPError as exc:
        raise DiscoveryError(f"Remote debugging endpoint {endpoint} unreachable: {exc}") from exc
    if response.status_code != 200:
        raise DiscoveryError(
            f"Remote debugging endpoint {endpoint} returned HTTP {response.status_code}"
        )
    try:
        payload = response.json()
    except ValueError as exc:
        raise DiscoveryError(f"Remote debugging endpoint {endpoint} returned invalid JSON") from exc

    ws_url = payload.get("webSocketDebuggerUrl") if isinstance(payload, dict) else None
    if not isinstance(ws_url, str) or not ws_url:
        raise DiscoveryError(f"No debuggable target advertised by {endpoint}")
    return ws_url


@contextlib.asynccontextmanager
async def open_devtools_session(
    endpoint: str,
    *,
    http_client: httpx.AsyncClient,
    logger: logging.Logger,
) -> AsyncIterator[Any]:
    """Connect to a running browser and yield a CDP session bound to one page target.

    Setup failures surface as DiscoveryError. Teardown failures are logged and never
    replace the outcome of the fetch.
    """

    ws_url = await discover_websocket_url(endpoint, http_client)
    logger.debug("Discovered remote browser endpoint=%s ws=%s", endpoint, ws_url)

    try:
        driver = await async_playwright().start()
    except Exception as exc:  # pylint: disable=broad-except
        raise DiscoveryError(f"Unable to start the Playwright driver: {exc}") from exc

    browser = None
    session = None
    try:
        try:
            browser = await driver.chromium.connect_over_cdp(ws_url)
        except PlaywrightError as exc:
            raise DiscoveryError(f"Unable to connect to {ws_url}: {exc}") from exc
        try:
            page = await _page_target(browser)
            session = await page.context.new_cdp_session(page)
        except PlaywrightError as exc:
            raise DiscoveryError(f"No usable page target at {endpoint}: {exc}") from exc
        logger.debug("Attached CDP session to page url=%s", page.url)
        yield session
    finally:
        await _release(logger, session, browser, driver)


async def _release(logger: logging.Logger, session: Any, browser: Any, driver: Any) -> None:
    steps = []
    if session is not None:
        steps.append(("detach session", session.detach))
    if browser is not None:
        steps.append(("close browser", browser.close))
    steps.append(("stop driver", driver.stop))
    for label, step in steps:
        try:
            await step()
        except PlaywrightError as exc:
            logger.debug("Ignoring failure to %s: %s", label, exc)


async def _page_target(browser: Any) -> Any:
    for context in browser.contexts:
        if context.pages:
            return context.pages[0]
    context = browser.contexts[0] if browser.contexts else await browser.new_context()
    return await context.new_page()
