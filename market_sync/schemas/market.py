from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from market_sync.adapters.exchange.base import Exchange


class QuoteOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    symbol: str
    exchange: Exchange
    price: float
    change: float
    change_percent: float
    high: float
    low: float
    open: float
    prev_close: float
    volume: float
    currency: str
    short_name: str
    last_updated: datetime
    chart_data: list[tuple[datetime, float]] = []


class QuoteListResponse(BaseModel):
    success: bool = True
    count: int
    data: list[QuoteOut]
    timestamp: datetime


class QuoteDetailResponse(BaseModel):
    success: bool = True
    data: QuoteOut
    timestamp: datetime


class ExchangeCycleOut(BaseModel):
    ok: bool
    records: int
    applied: int
    error: str | None = None
    duration_ms: int
    alert_sent: bool


class CycleSummaryOut(BaseModel):
    cycle_id: str
    forced: bool
    ok: bool
    started_at: datetime
    finished_at: datetime | None = None
    exchanges: dict[str, ExchangeCycleOut]


class SyncHealthOut(BaseModel):
    status: str
    ready: bool
    cached_symbols: int
    market_open: bool | None = None
    scheduler_running: bool
    skipped_ticks: int
    last_cycle: CycleSummaryOut | None = None
