from fastapi import APIRouter, Depends, Request

from market_sync.api.deps import get_market_engine
from market_sync.core.database import ping_database
from market_sync.schemas.market import SyncHealthOut
from market_sync.tasks.scheduler import MarketEngine

router = APIRouter()


@router.get("/health", response_model=SyncHealthOut)
async def health_sync(engine: MarketEngine | None = Depends(get_market_engine)) -> SyncHealthOut:
    if engine is None:
        return SyncHealthOut(status="disabled", ready=False, cached_symbols=0, scheduler_running=False, skipped_ticks=0)

    last_cycle = engine.sync.last_cycle
    ready = engine.sync.hydrated
    return SyncHealthOut(
        status="ok" if ready and (last_cycle is None or last_cycle.ok) else "degraded",
        ready=ready,
        cached_symbols=len(engine.cache),
        market_open=engine.state_machine.is_open if engine.state_machine.state is not None else None,
        scheduler_running=engine.scheduler.running,
        skipped_ticks=engine.scheduler.skipped_ticks,
        last_cycle=last_cycle.to_dict() if last_cycle is not None else None,
    )


@router.get("/health/live")
async def health_live() -> dict:
    return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request, engine: MarketEngine | None = Depends(get_market_engine)) -> dict:
    """Readiness gates on the quote store and hydration; Redis only carries events."""
    db_ok = await ping_database()
    hydrated = bool(engine is not None and engine.sync.hydrated)

    redis = getattr(request.app.state, "redis", None)
    redis_ok: bool | None = None
    if redis is not None:
        try:
            redis_ok = bool(await redis.ping())
        except Exception:
            redis_ok = False

    return {
        "status": "ok" if db_ok and hydrated else "degraded",
        "db": db_ok,
        "redis": redis_ok,
        "hydrated": hydrated,
    }
