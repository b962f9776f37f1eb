"""Initial schema: agents, orders, positions, performance_snapshots, activity_events.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.String(36),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()::text"),
    )


def _agent_fk() -> sa.Column:
    return sa.Column("agent_id", sa.String(36), sa.ForeignKey("agents.id"), nullable=False)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("NOW()"))


def upgrade() -> None:
    # --- agents ---
    op.create_table(
        "agents",
        _uuid_pk(),
        sa.Column("name", sa.String(50), unique=True, nullable=False),
        sa.Column("model", sa.String(50), nullable=False),
        sa.Column("api_key_ref", sa.String(100)),
        sa.Column("api_secret_ref", sa.String(100)),
        sa.Column("initial_capital", sa.Numeric(20, 8), nullable=False),
        sa.Column("current_capital", sa.Numeric(20, 8), nullable=False),
        sa.Column("total_pnl", sa.Numeric(20, 8), server_default="0"),
        sa.Column("total_pnl_percentage", sa.Numeric(12, 4), server_default="0"),
        sa.Column("total_trades", sa.Integer, server_default="0"),
        sa.Column("description", sa.Text),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    # --- orders ---
    op.create_table(
        "orders",
        _uuid_pk(),
        _agent_fk(),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column(
            "side",
            sa.String(4),
            sa.CheckConstraint("side IN ('BUY', 'SELL')"),
            nullable=False,
        ),
        sa.Column("type", sa.String(10), server_default="MARKET"),
        sa.Column("quantity", sa.Numeric(20, 8), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            sa.CheckConstraint("status IN ('PENDING', 'FILLED', 'PARTIALLY_FILLED', 'REJECTED')"),
            server_default="PENDING",
        ),
        sa.Column("filled_quantity", sa.Numeric(20, 8), server_default="0"),
        sa.Column("avg_filled_price", sa.Numeric(20, 8)),
        sa.Column("exchange_order_id", sa.String(50)),
        sa.Column("action", sa.String(5)),
        sa.Column("direction", sa.String(5)),
        sa.Column("strategy", sa.String(30)),
        sa.Column("reasoning", sa.Text),
        sa.Column("confidence", sa.Numeric(4, 3)),
        sa.Column("error_message", sa.Text),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "idx_orders_agent_created", "orders", ["agent_id", sa.text("created_at DESC")]
    )
    op.create_index("idx_orders_status", "orders", ["status"])

    # --- positions ---
    op.create_table(
        "positions",
        _uuid_pk(),
        _agent_fk(),
        sa.Column("asset", sa.String(10), nullable=False),
        sa.Column(
            "side",
            sa.String(5),
            sa.CheckConstraint("side IN ('LONG', 'SHORT')"),
            nullable=False,
        ),
        sa.Column("size", sa.Numeric(20, 8), nullable=False),
        sa.Column("entry_price", sa.Numeric(20, 8), nullable=False),
        sa.Column("current_price", sa.Numeric(20, 8), nullable=False),
        sa.Column("leverage", sa.Numeric(5, 2), server_default="1"),
        sa.Column("unrealized_pnl", sa.Numeric(20, 8), server_default="0"),
        sa.Column("unrealized_pnl_percentage", sa.Numeric(12, 4), server_default="0"),
        sa.Column("strategy", sa.String(30)),
        sa.Column("reasoning", sa.Text),
        sa.Column("confidence", sa.Numeric(4, 3)),
        sa.Column("open_order_ref", sa.String(36)),
        _timestamp("opened_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("agent_id", "asset", name="uq_positions_agent_asset"),
    )

    # --- performance_snapshots ---
    op.create_table(
        "performance_snapshots",
        _uuid_pk(),
        _agent_fk(),
        sa.Column("account_value", sa.Numeric(20, 8), nullable=False),
        sa.Column("total_pnl", sa.Numeric(20, 8), nullable=False),
        sa.Column("total_pnl_percentage", sa.Numeric(12, 4), nullable=False),
        sa.Column("open_positions", sa.Integer, server_default="0"),
        _timestamp("timestamp"),
    )
    op.create_index(
        "idx_snapshots_agent_ts",
        "performance_snapshots",
        ["agent_id", sa.text("timestamp DESC")],
    )

    # --- activity_events ---
    op.create_table(
        "activity_events",
        _uuid_pk(),
        _agent_fk(),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("asset", sa.String(10)),
        sa.Column("strategy", sa.String(30)),
        sa.Column("order_ref", sa.String(36)),
        _timestamp("timestamp"),
    )
    op.create_index(
        "idx_events_agent_ts", "activity_events", ["agent_id", sa.text("timestamp DESC")]
    )
    op.create_index("idx_events_type", "activity_events", ["event_type"])


def downgrade() -> None:
    op.drop_table("activity_events")
    op.drop_table("performance_snapshots")
    op.drop_table("positions")
    op.drop_table("orders")
    op.drop_table("agents")
