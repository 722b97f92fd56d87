"""Thread-safe in-memory quote cache; the only source read queries touch."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from threading import Lock

from market_sync.adapters.exchange.base import Exchange, QuoteRecord

logger = logging.getLogger(__name__)


class QuoteCache:
    """Latest QuoteRecord per symbol.

    Writers: hydration at startup, then one merge per fetcher per cycle.
    Readers: the read API; every read returns a snapshot, never a live view.
    """

    def __init__(self) -> None:
        self._rows: dict[str, QuoteRecord] = {}
        self._lock = Lock()
        self._version: int = 0  # bumped on every applied write

    def upsert(self, record: QuoteRecord) -> bool:
        """Overwrite the entry for ``record.symbol``. Returns False if it was older."""
        return self.upsert_many([record]) == 1

    def upsert_many(self, records: Iterable[QuoteRecord]) -> int:
        """Apply a batch of per-key overwrites; returns how many were applied.

        A record older than the cached one for the same symbol is ignored so
        ``last_updated`` never moves backwards.
        """
        applied = 0
        with self._lock:
            for record in records:
                symbol = record.symbol.upper()
                current = self._rows.get(symbol)
                if current is not None and record.last_updated < current.last_updated:
                    logger.debug(
                        "Ignoring out-of-order quote",
                        extra={"symbol": symbol, "exchange": record.exchange.value},
                    )
                    continue
                self._rows[symbol] = record
                applied += 1
            if applied:
                self._version += 1
        return applied

    # --- Read API ---

    def get_all(self) -> list[QuoteRecord]:
        with self._lock:
            return list(self._rows.values())

    def get_by_exchange(self, exchange: Exchange | str) -> list[QuoteRecord]:
        """Records for one exchange; the token is matched case-insensitively."""
        target = exchange.value if isinstance(exchange, Exchange) else str(exchange).strip().upper()
        with self._lock:
            return [row for row in self._rows.values() if row.exchange.value == target]

    def get_by_symbol(self, symbol: str) -> QuoteRecord | None:
        with self._lock:
            return self._rows.get(symbol.strip().upper())

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol.strip().upper() in self._rows
