"""Synchronization cycle: fetch both exchanges, merge into cache and durable store."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from market_sync.adapters.exchange.base import Exchange, ExchangeFetcher, QuoteRecord
from market_sync.adapters.exchange.errors import FetchError
from market_sync.services.quote_cache import QuoteCache
from market_sync.services.quote_store import QuoteRepository
from market_sync.services.telegram_alerts import TelegramAlertChannel, format_fetch_failure

logger = logging.getLogger(__name__)


@dataclass
class ExchangeSyncResult:
    exchange: Exchange
    ok: bool
    records: int = 0
    applied: int = 0
    error: str | None = None
    duration_ms: int = 0
    alert_sent: bool = False


@dataclass
class SyncCycleResult:
    cycle_id: str
    forced: bool
    started_at: datetime
    finished_at: datetime | None = None
    exchanges: dict[Exchange, ExchangeSyncResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.exchanges.values())

    def to_dict(self) -> dict:
        return {
            "cycle_id": self.cycle_id,
            "forced": self.forced,
            "ok": self.ok,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "exchanges": {
                exchange.value: {
                    "ok": result.ok,
                    "records": result.records,
                    "applied": result.applied,
                    "error": result.error,
                    "duration_ms": result.duration_ms,
                    "alert_sent": result.alert_sent,
                }
                for exchange, result in self.exchanges.items()
            },
        }


class MarketSyncService:
    """Runs synchronization cycles against an owned QuoteCache.

    Each fetcher runs under its own deadline and its outcome is merged on
    its own: a failure leaves that exchange's cached rows untouched and is
    routed to the alert channel, while the other exchange proceeds. Cycles
    are serialized by ``_cycle_lock``.
    """

    def __init__(
        self,
        cache: QuoteCache,
        repository: QuoteRepository,
        fetchers: Mapping[Exchange, ExchangeFetcher],
        alerts: TelegramAlertChannel,
        *,
        fetch_timeout: float = 40.0,
    ) -> None:
        self.cache = cache
        self.repository = repository
        self.fetchers = dict(fetchers)
        self.alerts = alerts
        self.fetch_timeout = fetch_timeout
        self.hydrated = False
        self.last_cycle: SyncCycleResult | None = None
        self.cycles_completed = 0
        self._cycle_lock = asyncio.Lock()
        self._pending_writes: set[asyncio.Task] = set()

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_lock.locked()

    async def hydrate(self) -> int:
        """Load every durable row into the cache. Returns rows applied."""
        try:
            records = await self.repository.load_all()
        except Exception:
            logger.exception("Cache hydration failed; starting with an empty cache")
            return 0
        applied = self.cache.upsert_many(records)
        self.hydrated = True
        logger.info("Cache hydrated from durable store", extra={"rows": len(records), "applied": applied})
        return applied

    async def run_cycle(self, *, forced: bool = False) -> SyncCycleResult:
        async with self._cycle_lock:
            cycle = SyncCycleResult(cycle_id=str(uuid.uuid4()), forced=forced, started_at=datetime.now(UTC))
            logger.info("Sync cycle started", extra={"cycle_id": cycle.cycle_id, "forced": forced})

            results = await asyncio.gather(
                *(self._sync_exchange(exchange, fetcher) for exchange, fetcher in self.fetchers.items())
            )
            for result in results:
                cycle.exchanges[result.exchange] = result

            await self.flush_pending_writes()
            cycle.finished_at = datetime.now(UTC)
            self.last_cycle = cycle
            self.cycles_completed += 1
            logger.info(
                "Sync cycle complete",
                extra={
                    "cycle_id": cycle.cycle_id,
                    "duration_ms": int((cycle.finished_at - cycle.started_at).total_seconds() * 1000),
                    "updated": {result.exchange.value: result.applied for result in results},
                    "failed": [result.exchange.value for result in results if not result.ok],
                },
            )
            return cycle

    async def _sync_exchange(self, exchange: Exchange, fetcher: ExchangeFetcher) -> ExchangeSyncResult:
        started = time.monotonic()
        try:
            records = await asyncio.wait_for(fetcher.fetch_quotes(), timeout=self.fetch_timeout)
        except FetchError as exc:
            reason = exc.reason
        except TimeoutError:
            reason = f"Timeout after {self.fetch_timeout:g}s"
        except Exception as exc:
            logger.exception("Unexpected fetcher error", extra={"exchange": exchange.value})
            reason = str(exc) or type(exc).__name__
        else:
            applied = self.merge(exchange, records)
            return ExchangeSyncResult(
                exchange=exchange,
                ok=True,
                records=len(records),
                applied=applied,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        logger.error("Exchange fetch failed", extra={"exchange": exchange.value, "reason": reason})
        alert_sent = await self.alerts.send_alert(format_fetch_failure(exchange, reason))
        return ExchangeSyncResult(
            exchange=exchange,
            ok=False,
            error=reason,
            duration_ms=int((time.monotonic() - started) * 1000),
            alert_sent=alert_sent,
        )

    def merge(self, exchange: Exchange, records: Sequence[QuoteRecord]) -> int:
        """Overwrite cache entries for *records*, then queue the durable upsert.

        Records tagged with another exchange are dropped so one fetcher can
        never write into the other's key set.
        """
        accepted = [record for record in records if record.exchange == exchange]
        if len(accepted) != len(records):
            logger.warning(
                "Dropping records tagged with a foreign exchange",
                extra={"exchange": exchange.value, "dropped": len(records) - len(accepted)},
            )
        if not accepted:
            return 0

        applied = self.cache.upsert_many(accepted)
        task = asyncio.create_task(self._persist(exchange, accepted))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return applied

    async def _persist(self, exchange: Exchange, records: list[QuoteRecord]) -> None:
        try:
            written = await self.repository.upsert_many(records)
        except Exception:
            logger.exception(
                "Durable quote write failed; cache stays ahead until the next cycle",
                extra={"exchange": exchange.value, "rows": len(records)},
            )
            return
        logger.debug("Durable quote write complete", extra={"exchange": exchange.value, "rows": written})

    async def flush_pending_writes(self) -> None:
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))
