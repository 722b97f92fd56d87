"""Headless browser capability used by portal-scraping fetchers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Collection
from typing import Any, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Response, Route, async_playwright

logger = logging.getLogger(__name__)

JsonHandler = Callable[[Any], None]

_BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class BrowserDriverError(Exception):
    """Raised when the browser cannot launch, navigate or evaluate."""


class BrowserDriver(Protocol):
    """The narrow slice of web automation a scraping fetcher needs.

    One driver instance backs exactly one session: ``start`` once, then
    ``close`` on every exit path.
    """

    async def start(self) -> None: ...

    async def block_resource_types(self, resource_types: Collection[str]) -> None: ...

    def on_json_response(self, url_marker: str, handler: JsonHandler) -> None: ...

    async def goto(self, url: str, *, timeout: float) -> None: ...

    async def wait(self, seconds: float) -> None: ...

    async def evaluate(self, expression: str) -> Any: ...

    async def close(self) -> None: ...


class PlaywrightDriver:
    """BrowserDriver backed by a Playwright-managed headless Chromium."""

    def __init__(self, *, headless: bool = True, user_agent: str = _USER_AGENT) -> None:
        self._headless = headless
        self._user_agent = user_agent
        self._playwright: Any = None
        self._browser: Any = None
        self._page: Any = None
        self._json_handlers: list[tuple[str, JsonHandler]] = []

    async def start(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=_BROWSER_ARGS,
            )
            context = await self._browser.new_context(user_agent=self._user_agent)
            self._page = await context.new_page()
        except PlaywrightError as exc:
            raise BrowserDriverError(f"Browser launch failed: {exc.message}") from exc
        self._page.on("response", self._dispatch_response)

    async def block_resource_types(self, resource_types: Collection[str]) -> None:
        blocked = frozenset(resource_types)

        async def _route(route: Route) -> None:
            if route.request.resource_type in blocked:
                await route.abort()
            else:
                await route.continue_()

        try:
            await self._require_page().route("**/*", _route)
        except PlaywrightError as exc:
            raise BrowserDriverError(f"Request interception failed: {exc.message}") from exc

    def on_json_response(self, url_marker: str, handler: JsonHandler) -> None:
        self._json_handlers.append((url_marker, handler))

    async def goto(self, url: str, *, timeout: float) -> None:
        try:
            await self._require_page().goto(url, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightError as exc:
            raise BrowserDriverError(f"Navigation to {url} failed: {exc.message}") from exc

    async def wait(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def evaluate(self, expression: str) -> Any:
        try:
            return await self._require_page().evaluate(expression)
        except PlaywrightError as exc:
            raise BrowserDriverError(f"In-page evaluation failed: {exc.message}") from exc

    async def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._page = None
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError:
                logger.warning("Browser close failed", exc_info=True)
        if playwright is not None:
            try:
                await playwright.stop()
            except PlaywrightError:
                logger.warning("Playwright stop failed", exc_info=True)

    # --- Internal ---

    def _require_page(self) -> Any:
        if self._page is None:
            raise BrowserDriverError("Browser session is not started")
        return self._page

    async def _dispatch_response(self, response: Response) -> None:
        handlers = [handler for marker, handler in self._json_handlers if marker in response.url]
        if not handlers:
            return
        try:
            body = await response.json()
        except (PlaywrightError, ValueError):
            logger.debug("Ignoring non-JSON intercepted response", extra={"url": response.url})
            return
        for handler in handlers:
            handler(body)
