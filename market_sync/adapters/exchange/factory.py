"""Builds the fixed set of per-exchange fetch strategies."""

from __future__ import annotations

import logging

from market_sync.adapters.exchange.adx_client import AdxPortalClient
from market_sync.adapters.exchange.base import Exchange, ExchangeFetcher
from market_sync.adapters.exchange.dfm_client import DfmQuoteClient
from market_sync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def build_fetchers(settings: Settings | None = None) -> dict[Exchange, ExchangeFetcher]:
    """One strategy per exchange, chosen once at startup.

    - DFM → DfmQuoteClient (structured quote API)
    - ADX → AdxPortalClient (headless portal interception)
    """
    settings = settings or get_settings()
    fetchers: dict[Exchange, ExchangeFetcher] = {
        Exchange.DFM: DfmQuoteClient(settings),
        Exchange.ADX: AdxPortalClient(settings),
    }
    logger.info(
        "Exchange fetchers configured",
        extra={"dfm_symbols": len(settings.dfm_symbols_list), "adx_portal_url": settings.adx_portal_url},
    )
    return fetchers
