import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status

from market_sync.adapters.exchange.base import Exchange
from market_sync.api.deps import get_quote_cache
from market_sync.schemas.market import QuoteDetailResponse, QuoteListResponse, QuoteOut
from market_sync.services.quote_cache import QuoteCache

router = APIRouter()
logger = logging.getLogger(__name__)

_INVALID_EXCHANGE_DETAIL = "Invalid exchange. Use DFM or ADX."


def _resolve_exchange(raw: str) -> Exchange:
    try:
        return Exchange.parse(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_INVALID_EXCHANGE_DETAIL) from None


def _list_response(records: list) -> QuoteListResponse:
    return QuoteListResponse(
        count=len(records),
        data=[QuoteOut.model_validate(record) for record in records],
        timestamp=datetime.now(UTC),
    )


@router.get("/all", response_model=QuoteListResponse)
async def get_all_quotes(cache: QuoteCache = Depends(get_quote_cache)) -> QuoteListResponse:
    return _list_response(cache.get_all())


@router.get("/{exchange}", response_model=QuoteListResponse)
async def get_exchange_quotes(
    exchange: str,
    cache: QuoteCache = Depends(get_quote_cache),
) -> QuoteListResponse:
    resolved = _resolve_exchange(exchange)
    return _list_response(cache.get_by_exchange(resolved))


@router.get("/{exchange}/{symbol}", response_model=QuoteDetailResponse)
async def get_symbol_quote(
    exchange: str,
    symbol: str,
    cache: QuoteCache = Depends(get_quote_cache),
) -> QuoteDetailResponse:
    resolved = _resolve_exchange(exchange)
    record = cache.get_by_symbol(symbol)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Symbol {symbol} not found.")
    if record.exchange != resolved:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Symbol {symbol} found but not in {exchange}. Did you mean {record.exchange.value}?",
        )
    return QuoteDetailResponse(data=QuoteOut.model_validate(record), timestamp=datetime.now(UTC))
