"""Read models for persisted rows (agents, orders, positions, snapshots)."""

from datetime import datetime

from pydantic import BaseModel


class AgentRecord(BaseModel):
    id: str
    name: str
    model: str = ""
    api_key_ref: str | None = None
    api_secret_ref: str | None = None
    initial_capital: float = 0.0
    current_capital: float = 0.0
    total_pnl: float = 0.0
    total_pnl_percentage: float = 0.0
    total_trades: int = 0
    description: str = ""
    is_active: bool = True


class OrderRecord(BaseModel):
    id: str
    agent_id: str
    symbol: str
    side: str  # BUY, SELL
    type: str = "MARKET"
    quantity: float
    status: str = "PENDING"  # PENDING, FILLED, PARTIALLY_FILLED, REJECTED
    filled_quantity: float = 0.0
    avg_filled_price: float | None = None
    exchange_order_id: str | None = None
    action: str | None = None  # OPEN, CLOSE
    direction: str | None = None  # LONG, SHORT
    strategy: str | None = None
    reasoning: str | None = None
    confidence: float | None = None
    error_message: str | None = None
    created_at: datetime | None = None


class PositionRecord(BaseModel):
    id: str
    agent_id: str
    asset: str
    side: str  # LONG, SHORT
    size: float
    entry_price: float
    current_price: float
    leverage: float = 1.0
    unrealized_pnl: float = 0.0
    unrealized_pnl_percentage: float = 0.0
    strategy: str | None = None
    reasoning: str | None = None
    confidence: float | None = None
    open_order_ref: str | None = None
    opened_at: datetime | None = None


class SnapshotRecord(BaseModel):
    id: str
    agent_id: str
    account_value: float
    total_pnl: float
    total_pnl_percentage: float
    open_positions: int = 0
    timestamp: datetime
