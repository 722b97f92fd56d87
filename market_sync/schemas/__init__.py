from market_sync.schemas.market import (
    CycleSummaryOut,
    ExchangeCycleOut,
    QuoteDetailResponse,
    QuoteListResponse,
    QuoteOut,
    SyncHealthOut,
)

__all__ = [
    "CycleSummaryOut",
    "ExchangeCycleOut",
    "QuoteDetailResponse",
    "QuoteListResponse",
    "QuoteOut",
    "SyncHealthOut",
]
