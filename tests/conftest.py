"""Shared fixtures."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from pagefetch.fetchers import devtools

WS_URL = "ws://127.0.0.1:9222/devtools/browser/abc"


@pytest.fixture()
def playwright_driver(monkeypatch):
    """Replace the Playwright driver and endpoint discovery with mocks.

    The mocked browser has one context holding one page; tests reshape
    `browser.contexts` or `context.pages` and set side effects as needed.
    """

    cdp_session = MagicMock(name="cdp_session")
    cdp_session.detach = AsyncMock()

    context = MagicMock(name="context")
    page = MagicMock(name="page", url="about:blank")
    page.context = context
    context.pages = [page]
    context.new_page = AsyncMock(return_value=page)
    context.new_cdp_session = AsyncMock(return_value=cdp_session)

    browser = MagicMock(name="browser")
    browser.contexts = [context]
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    driver = MagicMock(name="playwright")
    driver.chromium.connect_over_cdp = AsyncMock(return_value=browser)
    driver.stop = AsyncMock()

    starter = MagicMock(name="async_playwright")
    starter.start = AsyncMock(return_value=driver)
    monkeypatch.setattr(devtools, "async_playwright", MagicMock(return_value=starter))

    discover = AsyncMock(return_value=WS_URL)
    monkeypatch.setattr(devtools, "discover_websocket_url", discover)

    return SimpleNamespace(
        starter=starter,
        driver=driver,
        browser=browser,
        context=context,
        page=page,
        cdp_session=cdp_session,
        discover=discover,
    )
