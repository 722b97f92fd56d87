from __future__ import annotations

import argparse
import asyncio
import json
from datetime import UTC, datetime

from market_sync.core.config import get_settings
from market_sync.core.logging import setup_logging
from market_sync.services.market_hours import TradingHours, is_market_open
from market_sync.tasks.scheduler import build_market_engine
from market_sync.tasks.scheduler import main as run_scheduler


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Market sync operational CLI")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "sync-once",
        help="Hydrate the cache and run one forced sync cycle, then print its summary",
    )
    subparsers.add_parser("run", help="Run the sync scheduler without the HTTP API")
    status_parser = subparsers.add_parser("market-status", help="Report whether the market is open")
    status_parser.add_argument("--at", type=str, default=None, help="ISO-8601 instant to evaluate instead of now")

    return parser


async def _run_sync_once() -> int:
    engine = build_market_engine(get_settings())
    hydrated = await engine.sync.hydrate()
    cycle = await engine.sync.run_cycle(forced=True)
    summary = {"hydrated": hydrated, "cached_symbols": len(engine.cache), "cycle": cycle.to_dict()}
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0 if cycle.ok else 2


def _run_market_status(at: str | None) -> int:
    settings = get_settings()
    hours = TradingHours.from_settings(settings)
    now = datetime.fromisoformat(at) if at else datetime.now(UTC)
    summary = {
        "at": now.isoformat(),
        "exchange_local": (now.astimezone(hours.tz) if now.tzinfo else now).isoformat(),
        "open": is_market_open(now, hours),
        "trading_days": sorted(hours.trading_days),
        "window": f"{settings.market_open_time}-{settings.market_close_time}",
    }
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0


def main() -> int:
    parser = _build_arg_parser()
    args = parser.parse_args()
    if args.command == "sync-once":
        setup_logging()
        return asyncio.run(_run_sync_once())
    if args.command == "run":
        asyncio.run(run_scheduler())
        return 0
    if args.command == "market-status":
        return _run_market_status(args.at)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
