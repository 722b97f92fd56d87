from fastapi import HTTPException, Request, status

from market_sync.services.quote_cache import QuoteCache
from market_sync.tasks.scheduler import MarketEngine


def get_quote_cache(request: Request) -> QuoteCache:
    cache = getattr(request.app.state, "quote_cache", None)
    if cache is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Quote cache not initialised")
    return cache


def get_market_engine(request: Request) -> MarketEngine | None:
    return getattr(request.app.state, "market_engine", None)
