"""Overwrite local position rows with the exchange's authoritative position list."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from arena_trader.order_executor import order_side

if TYPE_CHECKING:
    from arena_trader.config import Settings
    from arena_trader.db.repository import AgentRepository, OrderRepository, PositionRepository
    from arena_trader.exchange.asterdex_client import AsterDexClient
    from arena_trader.exchange.registry import ExchangeClientRegistry
    from arena_trader.models.exchange import ExchangePosition
    from arena_trader.models.records import AgentRecord

logger = structlog.get_logger()


def unrealized_pnl_percentage(position: ExchangePosition) -> float:
    """Unrealized PnL relative to the margin committed (notional / leverage)."""
    size = abs(position.position_amt)
    leverage = position.leverage or 1.0
    margin = size * position.entry_price / leverage
    if margin <= 0:
        return 0.0
    return position.unrealized_profit / margin * 100


class PositionReconciler:
    def __init__(
        self,
        settings: Settings,
        agent_repo: AgentRepository,
        position_repo: PositionRepository,
        order_repo: OrderRepository,
        registry: ExchangeClientRegistry,
    ) -> None:
        self.settings = settings
        self.agent_repo = agent_repo
        self.position_repo = position_repo
        self.order_repo = order_repo
        self.registry = registry

    def asset_for(self, symbol: str) -> str:
        quote = self.settings.QUOTE_ASSET
        return symbol[: -len(quote)] if symbol.endswith(quote) else symbol

    async def sync_all(self) -> None:
        """Reconcile every active agent that has exchange credentials."""
        for agent in await self.agent_repo.get_active():
            client = self.registry.get(agent)
            if client is None:
                continue
            try:
                await self.sync_agent(agent, client)
            except Exception:
                logger.exception("position_sync_error", agent=agent.name)

    async def sync_agent(self, agent: AgentRecord, client: AsterDexClient) -> None:
        """Three-way merge: update matching rows, insert new ones, delete vanished ones."""
        reported = {
            self.asset_for(p.symbol): p
            for p in await client.get_positions()
            if abs(p.position_amt) > self.settings.POSITION_SIZE_TOLERANCE
        }
        local = {p.asset: p for p in await self.position_repo.get_for_agent(agent.id)}

        updated = inserted = deleted = 0
        for asset, position in reported.items():
            fields = {
                "side": position.side,
                "size": abs(position.position_amt),
                "entry_price": position.entry_price,
                "current_price": position.mark_price,
                "leverage": position.leverage,
                "unrealized_pnl": position.unrealized_profit,
                "unrealized_pnl_percentage": unrealized_pnl_percentage(position),
            }
            existing = local.get(asset)
            if existing is not None:
                await self.position_repo.update(existing.id, fields)
                updated += 1
                continue

            opening = await self.order_repo.get_latest(
                agent.id, position.symbol, order_side("OPEN", position.side)
            )
            await self.position_repo.create(
                {
                    "agent_id": agent.id,
                    "asset": asset,
                    **fields,
                    "strategy": opening.strategy if opening else None,
                    "reasoning": opening.reasoning if opening else None,
                    "confidence": opening.confidence if opening else None,
                    "open_order_ref": opening.id if opening else None,
                }
            )
            inserted += 1

        for asset, stale in local.items():
            if asset not in reported:
                await self.position_repo.delete(stale.id)
                deleted += 1

        logger.info(
            "positions_synced",
            agent=agent.name,
            open=len(reported),
            updated=updated,
            inserted=inserted,
            deleted=deleted,
        )
