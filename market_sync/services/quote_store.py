"""Durable store for the latest quotes, used for restart hydration."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from market_sync.adapters.exchange.base import Exchange, QuoteRecord
from market_sync.models.market_quote import MarketQuote

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

_REPLACED_COLUMNS = (
    "exchange",
    "price",
    "change",
    "change_percent",
    "high",
    "low",
    "open",
    "prev_close",
    "volume",
    "currency",
    "short_name",
    "last_updated",
    "chart_data",
    "updated_at",
)


class QuoteRepository:
    """Bulk insert-or-replace and full reload of ``market_quotes``.

    Each call opens its own session so writes never share a transaction
    with readers or with the other exchange's write.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert_many(self, records: Sequence[QuoteRecord]) -> int:
        """Replace every row in *records* keyed by symbol; returns rows written."""
        if not records:
            return 0

        now = datetime.now(UTC)
        rows = {record.symbol.upper(): _record_to_row(record, now) for record in records}

        async with self._session_factory() as db:
            dialect = db.get_bind().dialect.name
            insert = _INSERT_BY_DIALECT.get(dialect)
            if insert is None:
                raise RuntimeError(f"Unsupported database dialect for upsert: {dialect}")

            stmt = insert(MarketQuote).values(list(rows.values()))
            stmt = stmt.on_conflict_do_update(
                index_elements=[MarketQuote.symbol],
                set_={column: getattr(stmt.excluded, column) for column in _REPLACED_COLUMNS},
            )
            await db.execute(stmt)
            await db.commit()

        logger.debug("Durable quotes upserted", extra={"rows": len(rows)})
        return len(rows)

    async def load_all(self) -> list[QuoteRecord]:
        async with self._session_factory() as db:
            stmt = select(MarketQuote).order_by(MarketQuote.exchange.asc(), MarketQuote.symbol.asc())
            rows = (await db.execute(stmt)).scalars().all()
        return [_row_to_record(row) for row in rows]


def _record_to_row(record: QuoteRecord, now: datetime) -> dict:
    return {
        "symbol": record.symbol.upper(),
        "exchange": record.exchange.value,
        "price": record.price,
        "change": record.change,
        "change_percent": record.change_percent,
        "high": record.high,
        "low": record.low,
        "open": record.open,
        "prev_close": record.prev_close,
        "volume": record.volume,
        "currency": record.currency,
        "short_name": record.short_name,
        "last_updated": record.last_updated.astimezone(UTC),
        "chart_data": [[ts.isoformat(), price] for ts, price in record.chart_data],
        "created_at": now,
        "updated_at": now,
    }


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _row_to_record(row: MarketQuote) -> QuoteRecord:
    chart_points = tuple(
        (_as_utc(datetime.fromisoformat(ts)), float(price))
        for ts, price in (row.chart_data or [])
    )
    return QuoteRecord(
        symbol=row.symbol,
        exchange=Exchange(row.exchange),
        price=row.price,
        change=row.change,
        change_percent=row.change_percent,
        high=row.high,
        low=row.low,
        open=row.open,
        prev_close=row.prev_close,
        volume=row.volume,
        currency=row.currency,
        short_name=row.short_name,
        last_updated=_as_utc(row.last_updated),
        chart_data=chart_points,
    )
