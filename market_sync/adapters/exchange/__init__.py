"""Exchange fetch strategies: DFM quote API, ADX portal interception."""

from market_sync.adapters.exchange.adx_client import AdxPortalClient
from market_sync.adapters.exchange.base import Exchange, ExchangeFetcher, QuoteRecord
from market_sync.adapters.exchange.browser import BrowserDriver, BrowserDriverError, PlaywrightDriver
from market_sync.adapters.exchange.dfm_client import DfmQuoteClient
from market_sync.adapters.exchange.errors import FetchError
from market_sync.adapters.exchange.factory import build_fetchers

__all__ = [
    "AdxPortalClient",
    "BrowserDriver",
    "BrowserDriverError",
    "DfmQuoteClient",
    "Exchange",
    "ExchangeFetcher",
    "FetchError",
    "PlaywrightDriver",
    "QuoteRecord",
    "build_fetchers",
]
