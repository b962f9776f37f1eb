"""Hard risk limits applied to every advisory decision before capital is committed.

| Rule                  | Threshold            | Action                          |
|-----------------------|----------------------|---------------------------------|
| Minimum capital       | $7                   | REJECT any OPEN/CLOSE           |
| Trade frequency       | 3 per trading window | REJECT                          |
| Max position size     | 25% of capital       | CAP size (adjusted, not reject) |
| Minimum margin        | $7                   | RAISE size up to the cap        |
| Extreme 24h move      | +/-50%               | REJECT chasing the move         |
| Max loss per trade    | 5%                   | WARN on CLOSE (stop-loss)       |
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from arena_trader.models.decision import (
    AdvisoryContext,
    Decision,
    DecisionAdjustment,
    ValidationResult,
)

if TYPE_CHECKING:
    from arena_trader.config import Settings

logger = structlog.get_logger()


class RiskLimits(BaseModel):
    max_position_size_percent: float = 25.0
    max_loss_per_trade_percent: float = 5.0
    max_trades_per_cycle: int = 3
    min_capital_to_trade: float = 7.0
    extreme_move_percent: float = 50.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RiskLimits:
        return cls(
            max_position_size_percent=settings.MAX_POSITION_SIZE_PERCENT,
            max_loss_per_trade_percent=settings.MAX_LOSS_PER_TRADE_PERCENT,
            max_trades_per_cycle=settings.MAX_TRADES_PER_CYCLE,
            min_capital_to_trade=settings.MIN_CAPITAL_TO_TRADE,
            extreme_move_percent=settings.EXTREME_MOVE_PERCENT,
        )


def _reject(reason: str) -> ValidationResult:
    return ValidationResult(is_valid=False, reason=reason)


def validate(decision: Decision, context: AdvisoryContext, limits: RiskLimits) -> ValidationResult:
    """Run the rules in order; the first failure wins."""
    if decision.action == "HOLD":
        return ValidationResult(is_valid=True)

    capital = context.current_capital
    if capital < limits.min_capital_to_trade:
        return _reject(
            f"Insufficient capital: ${capital:.2f} < minimum ${limits.min_capital_to_trade:g}"
        )

    if context.recent_trades >= limits.max_trades_per_cycle:
        return _reject(
            f"Trade frequency limit reached: {context.recent_trades}/"
            f"{limits.max_trades_per_cycle} trades in current cycle"
        )

    if decision.action == "OPEN":
        return _validate_open(decision, context, limits)
    if decision.action == "CLOSE":
        return _validate_close(decision, context, limits)
    return _reject("Unknown action type")


def _validate_open(
    decision: Decision, context: AdvisoryContext, limits: RiskLimits
) -> ValidationResult:
    asset = decision.asset
    if not asset:
        return _reject("OPEN decision missing asset symbol")
    if decision.direction not in ("LONG", "SHORT"):
        return _reject("OPEN decision must specify direction: LONG or SHORT")
    if context.position_for(asset) is not None:
        return _reject(f"Already have open position in {asset}")

    size_pct = min(decision.position_size_percent, limits.max_position_size_percent)
    if size_pct <= 0:
        return _reject("Position size must be > 0%")
    if not decision.strategy:
        return _reject("OPEN decision missing strategy")

    quote = context.quote_for(asset)
    if quote is None:
        return _reject(f"No market data available for {asset}")
    change = quote.change_24h
    if decision.direction == "LONG" and change > limits.extreme_move_percent:
        return _reject(
            f"Market appears extremely overbought (+{change:.2f}%), blocking potential bad trade"
        )
    if decision.direction == "SHORT" and change < -limits.extreme_move_percent:
        return _reject(
            f"Market appears extremely oversold ({change:.2f}%), blocking potential bad trade"
        )

    adjusted: float | None = None
    if decision.position_size_percent > limits.max_position_size_percent:
        adjusted = limits.max_position_size_percent

    margin = context.current_capital * size_pct / 100
    if margin < limits.min_capital_to_trade:
        min_pct = limits.min_capital_to_trade / context.current_capital * 100
        if min_pct > limits.max_position_size_percent:
            return _reject(
                f"Trade amount too small: ${margin:.2f} < ${limits.min_capital_to_trade:g} "
                f"minimum. Need {min_pct:.1f}% but max is {limits.max_position_size_percent:g}%"
            )
        adjusted = max(size_pct, min_pct)
        logger.info(
            "position_size_raised",
            asset=asset,
            from_pct=round(size_pct, 2),
            to_pct=round(adjusted, 2),
        )

    if adjusted is None:
        return ValidationResult(is_valid=True)
    return ValidationResult(
        is_valid=True,
        adjusted_decision=DecisionAdjustment(position_size_percent=adjusted),
    )


def _validate_close(
    decision: Decision, context: AdvisoryContext, limits: RiskLimits
) -> ValidationResult:
    asset = decision.asset
    if not asset:
        return _reject("CLOSE decision missing asset symbol")
    position = context.position_for(asset)
    if position is None:
        return _reject(f"No open position in {asset} to close")

    warnings: list[str] = []
    quote = context.quote_for(asset)
    if quote is not None and position.entry_price > 0:
        move_pct = (quote.current_price - position.entry_price) / position.entry_price * 100
        pnl_pct = move_pct if position.side == "LONG" else -move_pct
        if pnl_pct < -limits.max_loss_per_trade_percent:
            warnings.append(f"Stop-loss triggered for {asset}: {pnl_pct:.2f}%")
    return ValidationResult(is_valid=True, warnings=warnings)
