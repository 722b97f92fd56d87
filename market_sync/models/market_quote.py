"""Durable latest-quote table: one row per exchange-qualified symbol."""

from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from market_sync.models.base import Base


class MarketQuote(Base):
    """Latest successful quote for a symbol.

    Rows are insert-or-replace keyed by ``symbol``; the sync engine never
    deletes them.  Used only to hydrate the in-memory cache after a restart.
    """

    __tablename__ = "market_quotes"

    symbol: Mapped[str] = mapped_column(String(32), primary_key=True)
    exchange: Mapped[str] = mapped_column(String(8), nullable=False, index=True)  # "DFM" | "ADX"
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    change: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    change_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    high: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    low: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    open: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    prev_close: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    volume: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="AED")
    short_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    chart_data: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )


Index("ix_market_quotes_exchange_symbol", MarketQuote.exchange, MarketQuote.symbol)
