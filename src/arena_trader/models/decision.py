"""Decision, ValidationResult, AdvisoryContext Pydantic models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from arena_trader.models.market import MarketQuote

Action = Literal["OPEN", "CLOSE", "HOLD"]
Direction = Literal["LONG", "SHORT"]


class Decision(BaseModel):
    action: Action = "HOLD"
    direction: Direction | None = None  # required for OPEN
    asset: str | None = None
    strategy: str | None = None
    position_size_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    reasoning: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class DecisionAdjustment(BaseModel):
    position_size_percent: float | None = None


class ValidationResult(BaseModel):
    is_valid: bool
    reason: str | None = None
    adjusted_decision: DecisionAdjustment | None = None
    warnings: list[str] = []


class OpenPositionView(BaseModel):
    asset: str
    side: Direction
    size: float
    entry_price: float
    current_price: float
    unrealized_pnl: float = 0.0


class AdvisoryContext(BaseModel):
    agent_name: str
    current_capital: float
    open_positions: list[OpenPositionView] = []
    market_data: list[MarketQuote] = []
    recent_trades: int = 0

    def quote_for(self, asset: str) -> MarketQuote | None:
        for quote in self.market_data:
            if quote.symbol == asset:
                return quote
        return None

    def position_for(self, asset: str) -> OpenPositionView | None:
        for position in self.open_positions:
            if position.asset == asset:
                return position
        return None
