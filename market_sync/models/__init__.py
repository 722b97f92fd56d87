from market_sync.models.base import Base
from market_sync.models.market_quote import MarketQuote

__all__ = ["Base", "MarketQuote"]
