from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from market_sync.adapters.exchange.base import Exchange
from market_sync.models import MarketQuote
from market_sync.services.market_sync import MarketSyncService
from market_sync.services.quote_cache import QuoteCache
from market_sync.services.quote_store import QuoteRepository
from market_sync.services.telegram_alerts import TelegramAlertChannel


def _records(make_quote):
    fetched_at = datetime(2026, 10, 19, 6, 45, tzinfo=UTC)
    return [
        make_quote(
            "EMAAR.AE",
            price=14.6,
            change=0.15,
            change_percent=1.04,
            high=14.7,
            low=14.4,
            open=14.45,
            prev_close=14.45,
            volume=1250000.0,
            short_name="EMAAR PROPERTIES",
            last_updated=fetched_at,
            chart_data=(
                (datetime(2026, 10, 19, 6, 0, tzinfo=UTC), 14.45),
                (datetime(2026, 10, 19, 6, 30, tzinfo=UTC), 14.6),
            ),
        ),
        make_quote("DIB.AE", price=6.12, last_updated=fetched_at),
        make_quote("FAB.AD", exchange=Exchange.ADX, price=17.98, change=0.12, last_updated=fetched_at),
    ]


async def test_upsert_twice_leaves_one_row_per_symbol(session_factory, make_quote) -> None:
    repository = QuoteRepository(session_factory)
    records = _records(make_quote)

    await repository.upsert_many(records)
    first = await repository.load_all()
    await repository.upsert_many(records)
    second = await repository.load_all()

    async with session_factory() as db:
        row_count = (await db.execute(select(func.count()).select_from(MarketQuote))).scalar_one()

    assert row_count == 3
    assert first == second


async def test_upsert_replaces_existing_values(session_factory, make_quote) -> None:
    repository = QuoteRepository(session_factory)
    await repository.upsert_many([make_quote("DIB.AE", price=6.12)])

    newer = make_quote("DIB.AE", price=6.2, last_updated=datetime(2026, 10, 19, 7, 0, tzinfo=UTC))
    await repository.upsert_many([newer])

    [loaded] = await repository.load_all()
    assert loaded == newer


async def test_empty_batch_is_a_no_op(session_factory) -> None:
    assert await QuoteRepository(session_factory).upsert_many([]) == 0


async def test_hydration_round_trip_after_restart(session_factory, make_quote, tmp_path) -> None:
    records = _records(make_quote)
    await QuoteRepository(session_factory).upsert_many(records)

    # A new engine on the same file stands in for a restarted process.
    restarted_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quotes.db'}")
    try:
        restarted_factory = async_sessionmaker(bind=restarted_engine, class_=AsyncSession, expire_on_commit=False)
        cache = QuoteCache()
        service = MarketSyncService(
            cache,
            QuoteRepository(restarted_factory),
            {},
            TelegramAlertChannel(None, None),
        )

        applied = await service.hydrate()
    finally:
        await restarted_engine.dispose()

    assert applied == 3
    assert service.hydrated is True
    assert sorted(cache.get_all(), key=lambda r: r.symbol) == sorted(records, key=lambda r: r.symbol)
