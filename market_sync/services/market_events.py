"""Emission of market open/close domain events.

The engine only emits; delivery to end users belongs to whoever listens,
either in-process or on the ``market:events`` Redis channel.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from redis.asyncio import Redis

from market_sync.services.market_hours import MarketTransition

logger = logging.getLogger(__name__)

MARKET_EVENTS_CHANNEL = "market:events"

MarketEventListener = Callable[[MarketTransition, datetime], Awaitable[None] | None]


class MarketEventPublisher:
    def __init__(self, redis: Redis | None = None) -> None:
        self._redis = redis
        self._listeners: list[MarketEventListener] = []
        self.history: list[tuple[MarketTransition, datetime]] = []

    def subscribe(self, listener: MarketEventListener) -> None:
        self._listeners.append(listener)

    async def publish(self, transition: MarketTransition, at: datetime | None = None) -> None:
        at = at or datetime.now(UTC)
        self.history.append((transition, at))
        logger.info("Market event emitted", extra={"event": transition.value, "at": at.isoformat()})

        for listener in list(self._listeners):
            try:
                result = listener(transition, at)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Market event listener failed", extra={"event": transition.value})

        if self._redis is not None:
            payload = json.dumps({"event": transition.value, "at": at.isoformat()})
            try:
                await self._redis.publish(MARKET_EVENTS_CHANNEL, payload)
            except Exception:
                logger.exception("Market event redis publish failed", extra={"event": transition.value})
