"""ADX fetcher that intercepts the ticker payload loaded by the public portal."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from market_sync.adapters.exchange.base import (
    EXCHANGE_CURRENCY,
    Exchange,
    QuoteRecord,
    coerce_number,
)
from market_sync.adapters.exchange.browser import BrowserDriver, BrowserDriverError, PlaywrightDriver
from market_sync.adapters.exchange.errors import FetchError
from market_sync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

ADX_SYMBOL_SUFFIX = ".AD"
BLOCKED_RESOURCE_TYPES = ("image", "font", "stylesheet", "media")
TICKER_ROW_KEY = "companySymbol"

# Fallback when interception misses: read the payload the page embeds for hydration.
EMBEDDED_PAYLOAD_EXPRESSION = """() => {
    const node = document.getElementById('__NEXT_DATA__');
    return node ? node.textContent : null;
}"""


class AdxPortalClient:
    """Fetches ADX quotes by rendering the exchange portal in a headless browser.

    The portal calls an internal ``scrollingTicker`` endpoint while it renders;
    the JSON body of that response carries every listed equity.  Two
    strategies are tried in order:

    1. intercept the ticker response during navigation (with a short grace
       wait when ``networkidle`` fires before the payload arrives);
    2. read the hydration payload embedded in the page and search it for
       ticker rows.

    Zero recovered rows is a failure: it is indistinguishable from a portal
    layout or API change.
    """

    exchange = Exchange.ADX

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        driver_factory: Callable[[], BrowserDriver] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._portal_url: str = settings.adx_portal_url
        self._url_marker: str = settings.adx_payload_url_marker
        self._grace_wait: float = settings.adx_grace_wait_seconds
        self._navigation_timeout: float = settings.fetch_timeout_seconds
        headless = settings.adx_headless
        self._driver_factory = driver_factory or (lambda: PlaywrightDriver(headless=headless))

    async def fetch_quotes(self) -> list[QuoteRecord]:
        captured: list[dict] = []

        def _capture(body: Any) -> None:
            rows = extract_ticker_rows(body)
            if rows:
                captured[:] = rows

        driver = self._driver_factory()
        logger.info("Launching ADX portal interceptor", extra={"url": self._portal_url})
        try:
            await driver.start()
            try:
                await driver.block_resource_types(BLOCKED_RESOURCE_TYPES)
            except BrowserDriverError:
                logger.warning("ADX resource blocking unavailable; continuing unoptimized")
            driver.on_json_response(self._url_marker, _capture)

            await driver.goto(self._portal_url, timeout=self._navigation_timeout)
            if not captured:
                await driver.wait(self._grace_wait)
            if not captured:
                captured.extend(await self._read_embedded_payload(driver))
        except BrowserDriverError as exc:
            raise FetchError(Exchange.ADX, str(exc)) from exc
        finally:
            await driver.close()

        records = parse_adx_rows(captured, fetched_at=datetime.now(UTC))
        if not records:
            raise FetchError(
                Exchange.ADX,
                "Portal interceptor found 0 records (ticker payload missing or layout changed)",
            )
        logger.info("ADX quotes fetched", extra={"rows": len(captured), "returned": len(records)})
        return records

    @staticmethod
    async def _read_embedded_payload(driver: BrowserDriver) -> list[dict]:
        try:
            raw = await driver.evaluate(EMBEDDED_PAYLOAD_EXPRESSION)
        except BrowserDriverError:
            logger.warning("ADX embedded payload lookup failed", exc_info=True)
            return []
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                return []
        rows = extract_ticker_rows(raw)
        if rows:
            logger.info("ADX rows recovered from embedded payload", extra={"rows": len(rows)})
        return rows


def extract_ticker_rows(payload: Any) -> list[dict]:
    """Locate the ticker row list inside an ADX payload.

    The documented shape is ``{"response": {"results": [...]}}``; anything
    else is searched depth-first for the first list of objects carrying
    ``companySymbol``.
    """
    if isinstance(payload, dict):
        response = payload.get("response")
        if isinstance(response, dict) and isinstance(response.get("results"), list):
            rows = [row for row in response["results"] if isinstance(row, dict)]
            if rows:
                return rows
    return _search_rows(payload, depth=0)


def _search_rows(node: Any, *, depth: int) -> list[dict]:
    if depth > 12:
        return []
    if isinstance(node, list):
        rows = [item for item in node if isinstance(item, dict)]
        if rows and any(TICKER_ROW_KEY in row for row in rows):
            return rows
        children = node
    elif isinstance(node, dict):
        children = list(node.values())
    else:
        return []
    for child in children:
        found = _search_rows(child, depth=depth + 1)
        if found:
            return found
    return []


def parse_adx_rows(rows: list[dict], *, fetched_at: datetime) -> list[QuoteRecord]:
    """Map ticker rows onto QuoteRecords.

    Row shape::

        {"companySymbol": "FAB", "lastTradedValue": 17.98, "changeValue": 0.12,
         "changePercentage": 0.67, "displaySecCode": "FAB"}

    The ticker carries no high/low/open/previous close/volume; those stay 0.
    """
    by_symbol: dict[str, QuoteRecord] = {}
    for row in rows:
        company_symbol = str(row.get(TICKER_ROW_KEY) or "").strip().upper()
        if not company_symbol:
            continue
        symbol = f"{company_symbol}{ADX_SYMBOL_SUFFIX}"
        by_symbol[symbol] = QuoteRecord(
            symbol=symbol,
            exchange=Exchange.ADX,
            price=coerce_number(row.get("lastTradedValue")),
            change=coerce_number(row.get("changeValue")),
            change_percent=coerce_number(row.get("changePercentage")),
            currency=EXCHANGE_CURRENCY[Exchange.ADX],
            short_name=str(row.get("displaySecCode") or company_symbol),
            last_updated=fetched_at,
        )
    return list(by_symbol.values())
