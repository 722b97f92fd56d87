"""Protocol and shared types for exchange quote fetchers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class Exchange(str, Enum):
    DFM = "DFM"
    ADX = "ADX"

    @classmethod
    def parse(cls, value: str) -> Exchange:
        """Case-insensitive lookup; raises ValueError for unknown tokens."""
        token = (value or "").strip().upper()
        for member in cls:
            if member.value == token:
                return member
        raise ValueError(f"Unknown exchange: {value!r}")


EXCHANGE_CURRENCY: dict[Exchange, str] = {
    Exchange.DFM: "AED",
    Exchange.ADX: "AED",
}

ChartPoint = tuple[datetime, float]


def coerce_number(value: Any) -> float:
    """Upstream numbers may be missing, null, strings or NaN; all collapse to 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


@dataclass(frozen=True, slots=True)
class QuoteRecord:
    """Latest known trading snapshot of one instrument on one exchange."""

    symbol: str
    exchange: Exchange
    price: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    high: float = 0.0
    low: float = 0.0
    open: float = 0.0
    prev_close: float = 0.0
    volume: float = 0.0
    currency: str = "AED"
    short_name: str = ""
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))
    chart_data: tuple[ChartPoint, ...] = ()


@runtime_checkable
class ExchangeFetcher(Protocol):
    """Interface every per-exchange fetch strategy must satisfy.

    ``fetch_quotes`` returns the normalized records for the tracked symbols
    or raises ``FetchError``; a partial success is never reported.
    """

    exchange: Exchange

    async def fetch_quotes(self) -> list[QuoteRecord]:
        ...
