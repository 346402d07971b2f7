"""Tests for fetch scopes, batched activation and endpoint discovery."""

from __future__ import annotations

import asyncio
import logging

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError

from pagefetch.core.errors import DiscoveryError, FetchAbortedError
from pagefetch.fetchers.devtools import (
    FetchScope,
    discover_websocket_url,
    open_devtools_session,
    run_batch,
)

logger = logging.getLogger("test")


@pytest.mark.asyncio
async def test_run_batch_returns_results_in_order():
    async def value(result, delay):
        await asyncio.sleep(delay)
        return result

    assert await run_batch(value("a", 0.02), value("b", 0.0), value("c", 0.01)) == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_run_batch_first_failure_cancels_the_rest():
    cancelled = asyncio.Event()

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async def fail():
        await asyncio.sleep(0)
        raise RuntimeError("activation refused")

    with pytest.raises(RuntimeError, match="activation refused"):
        await run_batch(slow(), fail())

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_run_batch_empty():
    assert await run_batch() == []


@pytest.mark.asyncio
async def test_scope_run_returns_result():
    async with FetchScope(logger) as scope:
        assert await scope.run(asyncio.sleep(0, result="done")) == "done"
        assert not scope.aborted


@pytest.mark.asyncio
async def test_scope_abort_unblocks_waiters():
    async with FetchScope(logger) as scope:
        cause = RuntimeError("listener failed")
        asyncio.get_running_loop().call_later(0.01, scope.abort, cause)

        with pytest.raises(FetchAbortedError) as excinfo:
            await scope.run(asyncio.sleep(10))

    assert excinfo.value.__cause__ is cause
    assert scope.cause is cause


@pytest.mark.asyncio
async def test_scope_rejects_work_after_abort():
    async with FetchScope(logger) as scope:
        scope.abort(RuntimeError("first"))
        scope.abort(RuntimeError("second"))

        coro = asyncio.sleep(0)
        with pytest.raises(FetchAbortedError, match="first"):
            await scope.run(coro)
        coro.close()


@pytest.mark.asyncio
async def test_spawned_failure_aborts_scope():
    async def listener():
        await asyncio.sleep(0)
        raise ValueError("bad event")

    async with FetchScope(logger) as scope:
        scope.spawn(listener())
        with pytest.raises(FetchAbortedError, match="bad event"):
            await scope.run(asyncio.sleep(10))


@pytest.mark.asyncio
async def test_scope_exit_cancels_background_tasks():
    async with FetchScope(logger) as scope:
        task = scope.spawn(asyncio.sleep(10))

    assert task.cancelled()
    assert not scope.aborted


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_discover_websocket_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/json/version"
        return httpx.Response(
            200,
            json={
                "Browser": "HeadlessChrome/126.0",
                "webSocketDebuggerUrl": "ws://127.0.0.1:9222/devtools/browser/abc",
            },
        )

    async with _client(handler) as client:
        ws_url = await discover_websocket_url("http://127.0.0.1:9222/", client)

    assert ws_url == "ws://127.0.0.1:9222/devtools/browser/abc"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="oops"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"Browser": "HeadlessChrome"}),
        httpx.Response(200, json=[]),
    ],
)
async def test_discovery_failures(response):
    async with _client(lambda request: response) as client:
        with pytest.raises(DiscoveryError):
            await discover_websocket_url("http://127.0.0.1:9222", client)


@pytest.mark.asyncio
async def test_discovery_unreachable_endpoint():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(refuse) as client:
        with pytest.raises(DiscoveryError, match="unreachable") as excinfo:
            await discover_websocket_url("http://127.0.0.1:9222", client)

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def _open(http_client=None):
    return open_devtools_session(
        "http://127.0.0.1:9222", http_client=http_client or object(), logger=logger
    )


@pytest.mark.asyncio
async def test_session_attaches_to_first_existing_page(playwright_driver):
    async with _open() as session:
        assert session is playwright_driver.cdp_session

    playwright_driver.driver.chromium.connect_over_cdp.assert_awaited_once_with(
        "ws://127.0.0.1:9222/devtools/browser/abc"
    )
    playwright_driver.context.new_cdp_session.assert_awaited_once_with(playwright_driver.page)
    playwright_driver.context.new_page.assert_not_awaited()
    playwright_driver.cdp_session.detach.assert_awaited_once()
    playwright_driver.browser.close.assert_awaited_once()
    playwright_driver.driver.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_session_opens_page_when_context_is_empty(playwright_driver):
    playwright_driver.context.pages = []

    async with _open():
        pass

    playwright_driver.context.new_page.assert_awaited_once()
    playwright_driver.browser.new_context.assert_not_awaited()


@pytest.mark.asyncio
async def test_session_creates_context_when_browser_has_none(playwright_driver):
    playwright_driver.browser.contexts = []

    async with _open():
        pass

    playwright_driver.browser.new_context.assert_awaited_once()
    playwright_driver.context.new_page.assert_awaited_once()


@pytest.mark.asyncio
async def test_driver_start_failure_is_discovery_error(playwright_driver):
    playwright_driver.starter.start.side_effect = RuntimeError("driver executable missing")

    with pytest.raises(DiscoveryError, match="driver executable missing"):
        async with _open():
            pass

    playwright_driver.driver.chromium.connect_over_cdp.assert_not_awaited()


@pytest.mark.asyncio
async def test_connect_failure_is_discovery_error(playwright_driver):
    playwright_driver.driver.chromium.connect_over_cdp.side_effect = PlaywrightError(
        "connect ECONNREFUSED"
    )

    with pytest.raises(DiscoveryError, match="ECONNREFUSED") as excinfo:
        async with _open():
            pass

    assert isinstance(excinfo.value.__cause__, PlaywrightError)
    playwright_driver.browser.close.assert_not_awaited()
    playwright_driver.driver.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_cdp_session_failure_closes_browser(playwright_driver):
    playwright_driver.context.new_cdp_session.side_effect = PlaywrightError("Target closed")

    with pytest.raises(DiscoveryError, match="Target closed"):
        async with _open():
            pass

    playwright_driver.cdp_session.detach.assert_not_awaited()
    playwright_driver.browser.close.assert_awaited_once()
    playwright_driver.driver.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_failure_inside_session_still_releases_everything(playwright_driver):
    with pytest.raises(FetchAbortedError):
        async with _open():
            raise FetchAbortedError("listener failed")

    playwright_driver.cdp_session.detach.assert_awaited_once()
    playwright_driver.browser.close.assert_awaited_once()
    playwright_driver.driver.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_teardown_failures_are_not_raised(playwright_driver):
    closed = PlaywrightError("Target page, context or browser has been closed")
    playwright_driver.cdp_session.detach.side_effect = closed
    playwright_driver.browser.close.side_effect = closed

    async with _open() as session:
        assert session is playwright_driver.cdp_session

    playwright_driver.browser.close.assert_awaited_once()
    playwright_driver.driver.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_discovery_runs_before_driver_starts(playwright_driver):
    playwright_driver.discover.side_effect = DiscoveryError("endpoint unreachable")

    with pytest.raises(DiscoveryError, match="unreachable"):
        async with _open():
            pass

    playwright_driver.starter.start.assert_not_awaited()
