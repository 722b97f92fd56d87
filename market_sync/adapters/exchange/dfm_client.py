"""DFM fetcher backed by a batched Yahoo Finance download."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

import pandas as pd
import yfinance as yf

from market_sync.adapters.exchange.base import (
    EXCHANGE_CURRENCY,
    Exchange,
    QuoteRecord,
    coerce_number,
)
from market_sync.adapters.exchange.errors import FetchError
from market_sync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_PRICE_COLUMNS = ("Open", "High", "Low", "Close", "Volume")


class DfmQuoteClient:
    """Fetches DFM quotes for the configured symbol list in one download.

    Configuration is read from the application Settings object:
    - ``dfm_symbols``: comma-separated Yahoo tickers (``.AE`` suffix).
    - ``dfm_timeout_seconds``: per-request timeout handed to yfinance.

    yfinance performs the cookie/crumb handshake Yahoo requires. The call
    is blocking, so it runs in a worker thread. Symbols Yahoo has no bars
    for are dropped; a download error or an all-empty result fails the
    whole fetch.
    """

    exchange = Exchange.DFM

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        download: Callable[..., pd.DataFrame] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._symbols: list[str] = settings.dfm_symbols_list
        self._timeout: float = settings.dfm_timeout_seconds
        self._download = download or yf.download

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    async def fetch_quotes(self) -> list[QuoteRecord]:
        if not self._symbols:
            logger.warning("No DFM symbols configured; skipping fetch")
            return []

        try:
            frame = await asyncio.to_thread(self._load)
        except Exception as exc:
            logger.warning("DFM quote download failed", extra={"error": str(exc)})
            raise FetchError(Exchange.DFM, str(exc) or type(exc).__name__) from exc

        if frame is None or frame.empty:
            raise FetchError(Exchange.DFM, "No quote data returned")
        if not isinstance(frame.columns, pd.MultiIndex):
            raise FetchError(Exchange.DFM, "Quote download is not grouped by ticker")

        records = parse_dfm_frame(frame, tracked=self._symbols, fetched_at=datetime.now(UTC))
        if not records:
            raise FetchError(Exchange.DFM, "No quote data returned")

        logger.info(
            "DFM quotes fetched",
            extra={"requested": len(self._symbols), "returned": len(records)},
        )
        return records

    def _load(self) -> pd.DataFrame:
        # Two daily bars give today's OHLCV plus the previous close.
        return self._download(
            tickers=self._symbols,
            period="5d",
            interval="1d",
            group_by="ticker",
            auto_adjust=False,
            progress=False,
            threads=True,
            timeout=self._timeout,
        )


def parse_dfm_frame(
    frame: pd.DataFrame,
    *,
    tracked: list[str],
    fetched_at: datetime,
) -> list[QuoteRecord]:
    """Map a ticker-grouped daily download onto QuoteRecords.

    Expected layout: two-level columns ``(ticker, field)`` with fields
    ``Open``/``High``/``Low``/``Close``/``Volume`` and one row per session.
    The newest row with a close is the quote; the row before it supplies
    ``prev_close`` (the quote's own close when only one session exists).
    """
    available = set(frame.columns.get_level_values(0))
    by_symbol: dict[str, QuoteRecord] = {}
    for symbol in tracked:
        symbol = symbol.upper()
        if symbol not in available or symbol in by_symbol:
            continue
        bars = frame[symbol]
        if "Close" not in bars.columns:
            continue
        bars = bars.dropna(subset=["Close"])
        if bars.empty:
            continue

        last = bars.iloc[-1]
        fields = {column: coerce_number(last.get(column)) for column in _PRICE_COLUMNS}
        price = fields["Close"]
        prev_close = coerce_number(bars["Close"].iloc[-2]) if len(bars) >= 2 else price
        change = price - prev_close
        by_symbol[symbol] = QuoteRecord(
            symbol=symbol,
            exchange=Exchange.DFM,
            price=price,
            change=round(change, 4),
            change_percent=round(change / prev_close * 100.0, 4) if prev_close else 0.0,
            high=fields["High"],
            low=fields["Low"],
            open=fields["Open"],
            prev_close=prev_close,
            volume=fields["Volume"],
            currency=EXCHANGE_CURRENCY[Exchange.DFM],
            short_name=symbol,
            last_updated=fetched_at,
        )
    return list(by_symbol.values())
