import os
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set before any market_sync import so cached settings and the module-level
# engine never point at real infrastructure.
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_URL"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_CHAT_ID"] = ""

from market_sync.adapters.exchange.base import Exchange, QuoteRecord  # noqa: E402
from market_sync.models import Base  # noqa: E402
from market_sync.services.quote_cache import QuoteCache  # noqa: E402


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    A file-backed SQLite durable store per test.
    Disposing the engine and starting a fresh one against the same file
    is how tests simulate a process restart.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quotes.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def quote_cache() -> QuoteCache:
    return QuoteCache()


@pytest.fixture
def make_quote() -> Callable[..., QuoteRecord]:
    def _make(
        symbol: str = "EMAAR.AE",
        exchange: Exchange = Exchange.DFM,
        price: float = 10.0,
        last_updated: datetime | None = None,
        **fields,
    ) -> QuoteRecord:
        return QuoteRecord(
            symbol=symbol,
            exchange=exchange,
            price=price,
            short_name=fields.pop("short_name", symbol.split(".")[0]),
            last_updated=last_updated or datetime(2026, 10, 19, 6, 30, tzinfo=UTC),
            **fields,
        )

    return _make
