import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from market_sync.adapters.exchange import Exchange, ExchangeFetcher, build_fetchers
from market_sync.core.config import Settings, get_settings
from market_sync.core.database import AsyncSessionLocal
from market_sync.core.logging import setup_logging
from market_sync.services.market_events import MarketEventPublisher
from market_sync.services.market_hours import MarketHoursStateMachine, TradingHours
from market_sync.services.market_sync import MarketSyncService, SyncCycleResult
from market_sync.services.quote_cache import QuoteCache
from market_sync.services.quote_store import QuoteRepository
from market_sync.services.telegram_alerts import TelegramAlertChannel

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Fixed-rate timer driving MarketSyncService.

    Ticks are spawned on schedule even while a cycle runs; a tick that finds
    a cycle in flight is skipped and counted rather than queued.
    """

    def __init__(
        self,
        sync: MarketSyncService,
        state_machine: MarketHoursStateMachine,
        events: MarketEventPublisher,
        *,
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.sync = sync
        self.state_machine = state_machine
        self.events = events
        self.interval_seconds = interval_seconds
        self.clock = clock or (lambda: datetime.now(UTC))
        self.skipped_ticks = 0
        self.ticks = 0
        self._loop_task: asyncio.Task | None = None
        self._tick_tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> SyncCycleResult | None:
        """Hydrate, run the forced startup cycle, then begin ticking."""
        if self.running:
            return None
        if not self.sync.hydrated:
            await self.sync.hydrate()
        logger.info("Running forced startup sync cycle")
        startup_cycle = await self.run_cycle(forced=True)
        self._loop_task = asyncio.create_task(self._run_loop(), name="market-sync-scheduler")
        logger.info("Sync scheduler started", extra={"interval_seconds": self.interval_seconds})
        return startup_cycle

    async def stop(self) -> None:
        tasks = [task for task in (self._loop_task, *self._tick_tasks) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._loop_task = None
        self._tick_tasks.clear()
        await self.sync.flush_pending_writes()
        logger.info("Sync scheduler stopped", extra={"ticks": self.ticks, "skipped_ticks": self.skipped_ticks})

    async def tick(self) -> SyncCycleResult | None:
        """Evaluate market hours, emit any transition, then maybe run a cycle."""
        self.ticks += 1
        now = self.clock()
        transition = self.state_machine.evaluate(now)
        if transition is not None:
            await self.events.publish(transition, now)

        if not self.state_machine.is_open:
            logger.debug("Market closed; tick idle")
            return None
        if self.sync.cycle_in_flight:
            self.skipped_ticks += 1
            logger.warning("Previous sync cycle still running; tick skipped", extra={"skipped_ticks": self.skipped_ticks})
            return None
        return await self.run_cycle()

    async def run_cycle(self, *, forced: bool = False) -> SyncCycleResult:
        # Runs in every replica; each one refreshes its own cache.
        return await self.sync.run_cycle(forced=forced)

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            task = asyncio.create_task(self._guarded_tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def _guarded_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Sync scheduler tick failed")


@dataclass
class MarketEngine:
    cache: QuoteCache
    sync: MarketSyncService
    scheduler: SyncScheduler
    events: MarketEventPublisher
    state_machine: MarketHoursStateMachine


def build_market_engine(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    *,
    redis: Redis | None = None,
    fetchers: Mapping[Exchange, ExchangeFetcher] | None = None,
    alerts: TelegramAlertChannel | None = None,
    cache: QuoteCache | None = None,
    clock: Callable[[], datetime] | None = None,
) -> MarketEngine:
    settings = settings or get_settings()
    cache = cache if cache is not None else QuoteCache()
    sync = MarketSyncService(
        cache,
        QuoteRepository(session_factory or AsyncSessionLocal),
        fetchers if fetchers is not None else build_fetchers(settings),
        alerts or TelegramAlertChannel.from_settings(settings),
        fetch_timeout=settings.fetch_timeout_seconds,
    )
    state_machine = MarketHoursStateMachine(TradingHours.from_settings(settings))
    events = MarketEventPublisher(redis)
    scheduler = SyncScheduler(
        sync,
        state_machine,
        events,
        interval_seconds=settings.sync_interval_seconds,
        clock=clock,
    )
    return MarketEngine(cache=cache, sync=sync, scheduler=scheduler, events=events, state_machine=state_machine)


async def connect_redis(redis_url: str | None) -> Redis | None:
    if not redis_url:
        return None
    try:
        redis = Redis.from_url(redis_url, decode_responses=True)
        await redis.ping()
    except Exception:
        logger.exception("Redis unavailable, market events stay in-process")
        return None
    return redis


async def main() -> None:
    setup_logging()
    settings = get_settings()
    logger.info(
        "Starting market sync scheduler",
        extra={
            "interval_seconds": settings.sync_interval_seconds,
            "fetch_timeout_seconds": settings.fetch_timeout_seconds,
            "trading_days": settings.market_trading_days_list,
            "market_open": settings.market_open_time,
            "market_close": settings.market_close_time,
            "alerts_configured": settings.alerts_configured,
        },
    )
    redis = await connect_redis(settings.redis_url)
    engine = build_market_engine(settings, redis=redis)
    await engine.scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.scheduler.stop()
        if redis is not None:
            await redis.aclose()


if __name__ == "__main__":
    asyncio.run(main())
