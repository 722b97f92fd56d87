"""market quotes table

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "market_quotes",
        sa.Column("symbol", sa.String(length=32), primary_key=True, nullable=False),
        sa.Column("exchange", sa.String(length=8), nullable=False),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("change", sa.Float(), nullable=False, server_default="0"),
        sa.Column("change_percent", sa.Float(), nullable=False, server_default="0"),
        sa.Column("high", sa.Float(), nullable=False, server_default="0"),
        sa.Column("low", sa.Float(), nullable=False, server_default="0"),
        sa.Column("open", sa.Float(), nullable=False, server_default="0"),
        sa.Column("prev_close", sa.Float(), nullable=False, server_default="0"),
        sa.Column("volume", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="AED"),
        sa.Column("short_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("chart_data", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_market_quotes_exchange", "market_quotes", ["exchange"], unique=False)
    op.create_index("ix_market_quotes_exchange_symbol", "market_quotes", ["exchange", "symbol"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_market_quotes_exchange_symbol", table_name="market_quotes")
    op.drop_index("ix_market_quotes_exchange", table_name="market_quotes")
    op.drop_table("market_quotes")
