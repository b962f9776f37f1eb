"""Submit sized orders and journal them (orders table + activity events)."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from arena_trader.order_sizing import format_quantity

if TYPE_CHECKING:
    from arena_trader.db.repository import (
        ActivityEventRepository,
        AgentRepository,
        OrderRepository,
    )
    from arena_trader.exchange.asterdex_client import AsterDexClient
    from arena_trader.models.decision import Decision
    from arena_trader.models.records import AgentRecord

logger = structlog.get_logger()

# Exchange status -> local order status
STATUS_MAP = {
    "FILLED": "FILLED",
    "PARTIALLY_FILLED": "PARTIALLY_FILLED",
    "NEW": "PENDING",
    "REJECTED": "REJECTED",
    "EXPIRED": "REJECTED",
    "CANCELED": "REJECTED",
}


class OrderResult(BaseModel):
    success: bool
    order_id: str | None = None
    exchange_order_id: str | None = None
    status: str = "REJECTED"
    filled_quantity: float = 0.0
    avg_price: float = 0.0
    error_message: str | None = None


def order_side(action: str, direction: str) -> str:
    """OPEN LONG / CLOSE SHORT buy; OPEN SHORT / CLOSE LONG sell."""
    if action == "OPEN":
        return "BUY" if direction == "LONG" else "SELL"
    return "SELL" if direction == "LONG" else "BUY"


class OrderExecutor:
    def __init__(
        self,
        order_repo: OrderRepository,
        event_repo: ActivityEventRepository,
        agent_repo: AgentRepository,
    ) -> None:
        self.order_repo = order_repo
        self.event_repo = event_repo
        self.agent_repo = agent_repo

    async def execute(
        self,
        agent: AgentRecord,
        client: AsterDexClient,
        decision: Decision,
        direction: str,
        symbol: str,
        quantity: Decimal,
    ) -> OrderResult:
        """PENDING row -> submit -> single update. Never raises."""
        action = decision.action
        side = order_side(action, direction)
        asset = decision.asset or ""
        qty_str = format_quantity(quantity)

        try:
            order_id = await self.order_repo.create(
                {
                    "agent_id": agent.id,
                    "symbol": symbol,
                    "side": side,
                    "type": "MARKET",
                    "quantity": quantity,
                    "status": "PENDING",
                    "action": action,
                    "direction": direction,
                    "strategy": decision.strategy,
                    "reasoning": decision.reasoning,
                    "confidence": decision.confidence,
                }
            )
        except Exception as e:
            logger.exception("order_journal_failed", agent=agent.name, symbol=symbol)
            return OrderResult(success=False, error_message=str(e))

        try:
            response = await client.create_order(
                symbol=symbol,
                side=side,
                quantity=qty_str,
                reduce_only=action == "CLOSE",
            )
        except Exception as e:
            logger.warning("order_failed", agent=agent.name, symbol=symbol, error=str(e))
            await self._mark_failed(agent, order_id, action, asset, decision.strategy, str(e))
            return OrderResult(success=False, order_id=order_id, error_message=str(e))

        status = STATUS_MAP.get(response.status, "PENDING")
        update = {
            "exchange_order_id": response.order_id,
            "status": status,
            "filled_quantity": response.executed_qty,
            "avg_filled_price": response.avg_price or None,
        }
        if status == "REJECTED":
            error = f"Exchange returned status {response.status}"
            logger.warning("order_rejected_by_exchange", agent=agent.name, symbol=symbol)
            await self._mark_failed(
                agent, order_id, action, asset, decision.strategy, error, update=update
            )
            return OrderResult(
                success=False,
                order_id=order_id,
                exchange_order_id=response.order_id,
                error_message=error,
            )

        try:
            await self.order_repo.update(order_id, update)
            event_type = "POSITION_OPENED" if action == "OPEN" else "POSITION_CLOSED"
            await self.event_repo.record(
                agent.id,
                event_type,
                f"{action} {direction} {qty_str} {asset} using {decision.strategy} - "
                f"{decision.reasoning}",
                asset=asset,
                strategy=decision.strategy,
                order_ref=order_id,
            )
            await self.agent_repo.increment_trades(agent.id)
        except Exception:
            logger.exception("order_journal_failed", agent=agent.name, order_id=order_id)

        logger.info(
            "order_executed",
            agent=agent.name,
            symbol=symbol,
            side=side,
            quantity=qty_str,
            status=status,
            exchange_order_id=response.order_id,
        )
        return OrderResult(
            success=True,
            order_id=order_id,
            exchange_order_id=response.order_id,
            status=status,
            filled_quantity=response.executed_qty,
            avg_price=response.avg_price,
        )

    async def _mark_failed(
        self,
        agent: AgentRecord,
        order_id: str,
        action: str,
        asset: str,
        strategy: str | None,
        error: str,
        update: dict | None = None,
    ) -> None:
        try:
            await self.order_repo.update(
                order_id, {**(update or {}), "status": "REJECTED", "error_message": error}
            )
            await self.event_repo.record(
                agent.id,
                "TRADE_ERROR",
                f"Failed to {action} {asset}: {error}",
                asset=asset,
                strategy=strategy,
                order_ref=order_id,
            )
        except Exception:
            logger.exception("order_failure_journal_failed", agent=agent.name, order_id=order_id)
