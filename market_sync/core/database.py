import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from market_sync.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    """Async engine for the quote store; SQLite skips the connection pool checks."""
    if url.startswith("sqlite"):
        return create_async_engine(url, future=True)
    return create_async_engine(url, future=True, pool_pre_ping=True, pool_size=5, max_overflow=5)


engine = build_engine(settings.resolved_database_url)
logger.info(
    "Quote store engine created",
    extra={
        "database_url_source": settings.resolved_database_url_source,
        "dialect": engine.dialect.name,
    },
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def ping_database(session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal) -> bool:
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Quote store ping failed", exc_info=True)
        return False
    return True


async def create_all_tables() -> None:
    """Create the schema directly; used for local SQLite setups without Alembic."""
    from market_sync.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
