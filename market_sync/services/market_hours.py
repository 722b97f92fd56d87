"""Trading-window predicate and the open/closed transition detector."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from enum import Enum

from market_sync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class MarketState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"


class MarketTransition(str, Enum):
    OPENED = "market-opened"
    CLOSED = "market-closed"


@dataclass(frozen=True)
class TradingHours:
    trading_days: frozenset[int]  # ISO weekdays, Monday=1
    open_time: time
    close_time: time
    utc_offset: timedelta

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> TradingHours:
        settings = settings or get_settings()
        return cls(
            trading_days=frozenset(settings.market_trading_days_list),
            open_time=settings.market_open,
            close_time=settings.market_close,
            utc_offset=timedelta(hours=settings.market_utc_offset_hours),
        )

    @property
    def tz(self) -> timezone:
        return timezone(self.utc_offset)


def is_market_open(now: datetime, hours: TradingHours) -> bool:
    """True when *now* falls on a trading day inside ``[open, close)``.

    Aware datetimes are converted to the exchange's fixed offset; naive ones
    are taken as already exchange-local.
    """
    local = now.astimezone(hours.tz) if now.tzinfo else now
    if local.isoweekday() not in hours.trading_days:
        return False
    return hours.open_time <= local.time() < hours.close_time


class MarketHoursStateMachine:
    """Remembers the previous tick's state and reports edges.

    The first evaluation only seeds the state; it never yields a transition.
    """

    def __init__(self, hours: TradingHours) -> None:
        self.hours = hours
        self.state: MarketState | None = None

    def evaluate(self, now: datetime) -> MarketTransition | None:
        return self.observe(is_market_open(now, self.hours))

    def observe(self, is_open: bool) -> MarketTransition | None:
        current = MarketState.OPEN if is_open else MarketState.CLOSED
        previous, self.state = self.state, current
        if previous is None or previous == current:
            return None
        transition = MarketTransition.OPENED if current == MarketState.OPEN else MarketTransition.CLOSED
        logger.info("Market state changed", extra={"from": previous.value, "to": current.value})
        return transition

    @property
    def is_open(self) -> bool:
        return self.state == MarketState.OPEN
