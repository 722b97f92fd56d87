"""Typed errors for exchange fetchers."""

from __future__ import annotations

from market_sync.adapters.exchange.base import Exchange


class FetchError(Exception):
    """Raised when a fetch strategy cannot produce a result for its exchange.

    Attributes:
        exchange: The exchange whose fetch failed.
        reason: Human-readable error description, safe to forward to operators.
    """

    def __init__(self, exchange: Exchange, reason: str) -> None:
        self.exchange = exchange
        self.reason = reason
        super().__init__(f"[{exchange.value}] {reason}")
