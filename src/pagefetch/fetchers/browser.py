"""Browser-driven fetcher for JavaScript-rendered pages."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from enum import Enum
from http.cookiejar import CookieJar
from pathlib import Path
from typing import Any, Dict, Optional, TypeVar

import httpx
from playwright.async_api import Error as PlaywrightError

from pagefetch.core.errors import (
    CapabilityActivationError,
    FetchError,
    NavigationError,
    NavigationTimeoutError,
    ProtocolError,
    ScriptError,
)
from pagefetch.core.request import FORM_CONTENT_TYPE, Request
from pagefetch.core.streams import MarkupStream
from pagefetch.fetchers.devtools import FetchScope, open_devtools_session, run_batch
from pagefetch.scripts import SCROLL_TO_BOTTOM, script_path

T = TypeVar("T")

SessionFactory = Callable[..., AbstractAsyncContextManager[Any]]

CAPABILITIES = ("DOM", "Network", "Page", "Runtime")
DOM_CONTENT_LOADED = "Page.domContentEventFired"
REQUEST_PAUSED = "Fetch.requestPaused"
DOCUMENT_PATTERN = {"urlPattern": "*", "resourceType": "Document", "requestStage": "Request"}


class NavigationState(str, Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    LOADED = "loaded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class _FirstRequestRewriter:
    """Continue the first paused request with a new method and body, then stop intercepting."""

    def __init__(self, session: Any, scope: FetchScope, method: str, body: bytes) -> None:
        self.session = session
        self.scope = scope
        self.method = method
        self.body = body
        self.handled = False
        self.attached = False

    async def attach(self) -> None:
        self.session.on(REQUEST_PAUSED, self._on_paused)
        self.attached = True
        await self.session.send("Fetch.enable", {"patterns": [DOCUMENT_PATTERN]})

    def detach(self) -> None:
        if self.attached:
            self.attached = False
            self.session.remove_listener(REQUEST_PAUSED, self._on_paused)

    def _on_paused(self, params: Dict[str, Any]) -> None:
        if self.handled:
            return
        if params.get("resourceType", "Document") != "Document":
            # Requests other than the navigation document continue unchanged.
            self.scope.spawn(
                self.session.send("Fetch.continueRequest", {"requestId": params["requestId"]})
            )
            return
        self.handled = True
        self.detach()
        self.scope.spawn(self._continue(params))

    async def _continue(self, params: Dict[str, Any]) -> None:
        original = params.get("request", {}).get("headers", {}) or {}
        headers = [
            {"name": name, "value": str(value)}
            for name, value in original.items()
            if name.lower() not in {"content-type", "content-length"}
        ]
        args: Dict[str, Any] = {"requestId": params["requestId"], "method": self.method}
        if self.body:
            headers.append({"name": "Content-Type", "value": FORM_CONTENT_TYPE})
            headers.append({"name": "Content-Length", "value": str(len(self.body))})
            args["postData"] = base64.b64encode(self.body).decode("ascii")
        args["headers"] = headers
        await self.session.send("Fetch.continueRequest", args)
        await self.session.send("Fetch.disable")


@dataclass(slots=True)
class BrowserFetcher:
    """Render pages in a remote Chrome instance and return the serialized DOM.

    Every call opens its own debugging session and tears it down before returning.
    """

    logger: logging.Logger
    endpoint: str = "http://127.0.0.1:9222"
    proxy: Optional[str] = None
    http_timeout: float = 30.0
    navigation_timeout: float = 5.0
    scroll_grace_period: float = 3.0
    scroll_script: Optional[Path] = None
    protocol_timeout: Optional[float] = None
    jar: Optional[CookieJar] = None
    connect: SessionFactory = open_devtools_session
    navigation_state: NavigationState = field(default=NavigationState.IDLE, init=False)

    async def fetch(self, request: Request) -> MarkupStream:
        url = request.validated_url()
        method = request.http_method
        form = request.encoded_form() if request.form_data else ""
        started_at = time.monotonic()
        self.navigation_state = NavigationState.IDLE
        self.logger.debug(
            "Browser fetch start url=%s method=%s endpoint=%s", url, method, self.endpoint
        )

        try:
            async with self._discovery_client() as http_client:
                async with self.connect(
                    self.endpoint, http_client=http_client, logger=self.logger
                ) as session, FetchScope(self.logger) as scope:
                    await self._activate(session, scope)
                    await self._navigate(session, scope, url, method, form)
                    if request.infinite_scroll:
                        await self._scroll(session, scope)
                    markup = await self._outer_html(session, scope)
        except FetchError as exc:
            self.logger.warning("Browser fetch failed url=%s error=%s", url, exc)
            raise
        except PlaywrightError as exc:
            self.logger.warning("Browser fetch failed url=%s error=%s", url, exc)
            raise ProtocolError(f"Remote browser session failed: {exc}", url=url) from exc

        self.logger.debug(
            "Browser fetch complete url=%s bytes=%s elapsed=%.2fs",
            url,
            len(markup),
            time.monotonic() - started_at,
        )
        return MarkupStream(markup)

    def _discovery_client(self) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"timeout": self.http_timeout}
        if self.jar is not None:
            kwargs["cookies"] = self.jar
        if self.proxy:
            kwargs["proxy"] = self.proxy
        return httpx.AsyncClient(**kwargs)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        if self.protocol_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.protocol_timeout)

    async def _activate(self, session: Any, scope: FetchScope) -> None:
        try:
            await self._bounded(
                scope.run(run_batch(*(session.send(f"{name}.enable") for name in CAPABILITIES)))
            )
        except FetchError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise CapabilityActivationError(f"Capability activation failed: {exc}") from exc
        self.logger.debug("Activated capabilities %s", ", ".join(CAPABILITIES))

    async def _navigate(
        self, session: Any, scope: FetchScope, url: str, method: str, form: str
    ) -> None:
        loaded = asyncio.Event()

        def on_loaded(_params: Any = None) -> None:
            loaded.set()

        rewriter: Optional[_FirstRequestRewriter] = None
        if form or method != "GET":
            rewriter = _FirstRequestRewriter(
                session, scope, "POST" if form else method, form.encode("utf-8")
            )

        async def navigate() -> None:
            if rewriter is not None:
                await rewriter.attach()
            reply = await session.send("Page.navigate", {"url": url})
            error_text = (reply or {}).get("errorText")
            if error_text:
                raise NavigationError(f"Navigation to {url} failed: {error_text}", url=url)
            await loaded.wait()

        self.navigation_state = NavigationState.NAVIGATING
        session.on(DOM_CONTENT_LOADED, on_loaded)
        try:
            await asyncio.wait_for(scope.run(navigate()), timeout=self.navigation_timeout)
        except asyncio.TimeoutError as exc:
            self.navigation_state = NavigationState.TIMED_OUT
            raise NavigationTimeoutError(
                f"DOM content not loaded within {self.navigation_timeout:.1f}s: {url}", url=url
            ) from exc
        except FetchError:
            self.navigation_state = NavigationState.FAILED
            raise
        except Exception as exc:  # pylint: disable=broad-except
            self.navigation_state = NavigationState.FAILED
            raise NavigationError(f"Navigation to {url} failed: {exc}", url=url) from exc
        finally:
            session.remove_listener(DOM_CONTENT_LOADED, on_loaded)
            if rewriter is not None:
                rewriter.detach()

        self.navigation_state = NavigationState.LOADED
        self.logger.debug("Navigation loaded url=%s method=%s", url, method)

    async def _scroll(self, session: Any, scope: FetchScope) -> None:
        # Give the page's own scripts a head start before scrolling.
        await scope.run(asyncio.sleep(self.scroll_grace_period))

        path = self.scroll_script or script_path(SCROLL_TO_BOTTOM)
        try:
            expression = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ScriptError(f"Unable to read script {path}: {exc}") from exc

        try:
            compiled = await scope.run(
                session.send(
                    "Runtime.compileScript",
                    {"expression": expression, "sourceURL": path.name, "persistScript": True},
                )
            )
            _raise_on_exception(compiled, path)
            script_id = compiled.get("scriptId")
            if not script_id:
                raise ScriptError(f"Script {path.name} did not compile to a script id")
            result = await scope.run(
                session.send("Runtime.runScript", {"scriptId": script_id, "awaitPromise": True})
            )
            _raise_on_exception(result, path)
        except FetchError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise ScriptError(f"Script {path.name} failed: {exc}") from exc
        self.logger.debug("Ran script %s", path.name)

    async def _outer_html(self, session: Any, scope: FetchScope) -> str:
        async def extract() -> str:
            document = await session.send("DOM.getDocument")
            node_id = document["root"]["nodeId"]
            reply = await session.send("DOM.getOuterHTML", {"nodeId": node_id})
            return reply["outerHTML"]

        try:
            return await self._bounded(scope.run(extract()))
        except FetchError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise ProtocolError(f"Document extraction failed: {exc}") from exc

    def get_cookie_jar(self) -> Optional[CookieJar]:
        return self.jar

    def set_cookie_jar(self, jar: Optional[CookieJar]) -> None:
        self.jar = jar

    @classmethod
    def from_options(
        cls, logger: logging.Logger, *, options: Optional[Dict[str, Any]] = None
    ) -> "BrowserFetcher":
        """Create a BrowserFetcher from an option dict."""
        opts = dict(options or {})
        script = opts.get("scroll_script")
        protocol_timeout = opts.get("protocol_timeout")
        return cls(
            logger=logger,
            endpoint=str(opts.get("chrome_endpoint", "http://127.0.0.1:9222")).rstrip("/"),
            proxy=opts.get("proxy") or None,
            http_timeout=float(opts.get("http_timeout", 30.0)),
            navigation_timeout=float(opts.get("navigation_timeout", 5.0)),
            scroll_grace_period=float(opts.get("scroll_grace_period", 3.0)),
            scroll_script=Path(script) if script is not None else None,
            protocol_timeout=float(protocol_timeout) if protocol_timeout is not None else None,
        )


def _raise_on_exception(reply: Optional[Dict[str, Any]], path: Path) -> None:
    details = (reply or {}).get("exceptionDetails")
    if details:
        message = details.get("text") or "uncaught exception"
        exception = details.get("exception") or {}
        description = exception.get("description")
        if description:
            message = f"{message} {description}"
        raise ScriptError(f"Script {path.name} raised: {message}")
