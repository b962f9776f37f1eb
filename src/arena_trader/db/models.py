"""SQLAlchemy ORM models: agents, orders, positions, snapshots, activity events."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

EVENT_TYPES = (
    "AGENT_INITIALIZED",
    "DECISION_REJECTED",
    "POSITION_OPENED",
    "POSITION_CLOSED",
    "STOP_LOSS",
    "TRADE_ERROR",
)


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class AgentORM(Base):
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    model: Mapped[str] = mapped_column(String(50), nullable=False)
    api_key_ref: Mapped[str | None] = mapped_column(String(100))
    api_secret_ref: Mapped[str | None] = mapped_column(String(100))
    initial_capital: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    current_capital: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    total_pnl: Mapped[float] = mapped_column(Numeric(20, 8), default=0)
    total_pnl_percentage: Mapped[float] = mapped_column(Numeric(12, 4), default=0)
    total_trades: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class OrderORM(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(String(36), ForeignKey("agents.id"), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    side: Mapped[str] = mapped_column(
        String(4),
        CheckConstraint("side IN ('BUY', 'SELL')"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(10), default="MARKET")
    quantity: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint("status IN ('PENDING', 'FILLED', 'PARTIALLY_FILLED', 'REJECTED')"),
        default="PENDING",
    )
    filled_quantity: Mapped[float] = mapped_column(Numeric(20, 8), default=0)
    avg_filled_price: Mapped[float | None] = mapped_column(Numeric(20, 8))
    exchange_order_id: Mapped[str | None] = mapped_column(String(50))
    action: Mapped[str | None] = mapped_column(String(5))
    direction: Mapped[str | None] = mapped_column(String(5))
    strategy: Mapped[str | None] = mapped_column(String(30))
    reasoning: Mapped[str | None] = mapped_column(Text)
    confidence: Mapped[float | None] = mapped_column(Numeric(4, 3))
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_orders_agent_created", "agent_id", created_at.desc()),
        Index("idx_orders_status", "status"),
    )


class PositionORM(Base):
    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(String(36), ForeignKey("agents.id"), nullable=False)
    asset: Mapped[str] = mapped_column(String(10), nullable=False)
    side: Mapped[str] = mapped_column(
        String(5),
        CheckConstraint("side IN ('LONG', 'SHORT')"),
        nullable=False,
    )
    size: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    entry_price: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    current_price: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    leverage: Mapped[float] = mapped_column(Numeric(5, 2), default=1)
    unrealized_pnl: Mapped[float] = mapped_column(Numeric(20, 8), default=0)
    unrealized_pnl_percentage: Mapped[float] = mapped_column(Numeric(12, 4), default=0)
    strategy: Mapped[str | None] = mapped_column(String(30))
    reasoning: Mapped[str | None] = mapped_column(Text)
    confidence: Mapped[float | None] = mapped_column(Numeric(4, 3))
    open_order_ref: Mapped[str | None] = mapped_column(String(36))
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (UniqueConstraint("agent_id", "asset", name="uq_positions_agent_asset"),)


class PerformanceSnapshotORM(Base):
    __tablename__ = "performance_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(String(36), ForeignKey("agents.id"), nullable=False)
    account_value: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    total_pnl: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    total_pnl_percentage: Mapped[float] = mapped_column(Numeric(12, 4), nullable=False)
    open_positions: Mapped[int] = mapped_column(Integer, default=0)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("idx_snapshots_agent_ts", "agent_id", timestamp.desc()),)


class ActivityEventORM(Base):
    __tablename__ = "activity_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(String(36), ForeignKey("agents.id"), nullable=False)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    asset: Mapped[str | None] = mapped_column(String(10))
    strategy: Mapped[str | None] = mapped_column(String(30))
    order_ref: Mapped[str | None] = mapped_column(String(36))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_events_agent_ts", "agent_id", timestamp.desc()),
        Index("idx_events_type", "event_type"),
    )
