import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from market_sync.api.router import api_router
from market_sync.core.config import get_settings
from market_sync.core.database import create_all_tables
from market_sync.core.logging import setup_logging
from market_sync.services.quote_cache import QuoteCache
from market_sync.tasks.scheduler import build_market_engine, connect_redis

settings = get_settings()

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
        send_default_pii=False,
    )
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    redis = await connect_redis(settings.redis_url)
    app.state.redis = redis

    if settings.database_auto_create:
        await create_all_tables()

    engine = build_market_engine(settings, redis=redis, cache=app.state.quote_cache)
    app.state.market_engine = engine
    await engine.sync.hydrate()

    startup_task: asyncio.Task | None = None
    if settings.sync_enabled:
        startup_task = asyncio.create_task(engine.scheduler.start())
    else:
        logger.info("Market sync disabled; serving hydrated cache only")

    yield

    if startup_task is not None:
        startup_task.cancel()
        with suppress(asyncio.CancelledError):
            await startup_task
    await engine.scheduler.stop()
    app.state.market_engine = None
    if redis is not None:
        await redis.aclose()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.state.quote_cache = QuoteCache()
app.state.market_engine = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin"],
)
# Full-market responses carry every tracked quote.
app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)

app.include_router(api_router, prefix="/api/v1")
