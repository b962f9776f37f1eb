"""Agent balance refresh and throttled performance snapshots."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Awaitable, Callable

import structlog

from arena_trader.exchange.asterdex_client import BALANCE_ASSETS

if TYPE_CHECKING:
    from arena_trader.config import Settings
    from arena_trader.db.repository import (
        AgentRepository,
        OrderRepository,
        PerformanceSnapshotRepository,
        PositionRepository,
    )
    from arena_trader.exchange.asterdex_client import AsterDexClient
    from arena_trader.exchange.registry import ExchangeClientRegistry
    from arena_trader.models.records import AgentRecord

logger = structlog.get_logger()

BalanceStrategy = Callable[["AgentRecord", "AsterDexClient | None"], Awaitable["float | None"]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_balance(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


class BalanceAccountant:
    """Resolves each agent's account value through an ordered chain of strategies.

    1. exchange_total            -- totalMarginBalance, else wallet + unrealized
    2. available_plus_unrealized -- stablecoin balance plus open-position PnL
    3. order_replay              -- initial capital replayed over local FILLED orders

    The first strategy returning a value wins. Non-finite or non-positive
    values are never written.
    """

    def __init__(
        self,
        settings: Settings,
        agent_repo: AgentRepository,
        order_repo: OrderRepository,
        position_repo: PositionRepository,
        snapshot_repo: PerformanceSnapshotRepository,
        registry: ExchangeClientRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings
        self.agent_repo = agent_repo
        self.order_repo = order_repo
        self.position_repo = position_repo
        self.snapshot_repo = snapshot_repo
        self.registry = registry
        self.clock = clock
        self.strategies: list[tuple[str, BalanceStrategy]] = [
            ("exchange_total", self._exchange_total),
            ("available_plus_unrealized", self._available_plus_unrealized),
            ("order_replay", self._order_replay),
        ]

    async def refresh_all(self) -> None:
        for agent in await self.agent_repo.get_active():
            try:
                await self.refresh_agent(agent)
            except Exception:
                logger.exception("balance_refresh_error", agent=agent.name)

    async def refresh_agent(self, agent: AgentRecord) -> float | None:
        """Resolve, persist and snapshot one agent's balance. Returns the balance written."""
        client = self.registry.get(agent)
        balance, source = await self.resolve_balance(agent, client)
        if not is_valid_balance(balance):
            logger.warning("balance_invalid_skipped", agent=agent.name, balance=balance)
            return None

        initial = agent.initial_capital
        total_pnl = balance - initial
        total_pnl_pct = total_pnl / initial * 100 if initial > 0 else 0.0

        await self.agent_repo.update_capital(agent.id, balance, total_pnl, total_pnl_pct)
        logger.info(
            "balance_updated",
            agent=agent.name,
            balance=round(balance, 4),
            pnl=round(total_pnl, 4),
            source=source,
        )
        await self._maybe_snapshot(agent, balance, total_pnl, total_pnl_pct)
        return balance

    async def resolve_balance(
        self, agent: AgentRecord, client: AsterDexClient | None
    ) -> tuple[float | None, str | None]:
        for name, strategy in self.strategies:
            try:
                value = await strategy(agent, client)
            except Exception as e:
                logger.warning("balance_strategy_failed", agent=agent.name, strategy=name, error=str(e))
                continue
            if value is not None:
                return value, name
        return None, None

    async def _maybe_snapshot(
        self, agent: AgentRecord, balance: float, total_pnl: float, total_pnl_pct: float
    ) -> bool:
        now = self.clock()
        latest = await self.snapshot_repo.get_latest(agent.id)
        min_interval = timedelta(seconds=self.settings.SNAPSHOT_MIN_INTERVAL_SECONDS)
        if latest is not None and now - latest.timestamp < min_interval:
            return False

        open_positions = len(await self.position_repo.get_for_agent(agent.id))
        await self.snapshot_repo.save(
            {
                "agent_id": agent.id,
                "account_value": balance,
                "total_pnl": total_pnl,
                "total_pnl_percentage": total_pnl_pct,
                "open_positions": open_positions,
                "timestamp": now,
            }
        )
        return True

    # --- Balance strategies ---

    async def _exchange_total(
        self, agent: AgentRecord, client: AsterDexClient | None
    ) -> float | None:
        if client is None:
            return None
        account = await client.get_account_info()
        if account.total_margin_balance is not None:
            return account.total_margin_balance
        if account.total_wallet_balance is not None:
            return account.total_wallet_balance + (account.total_unrealized_profit or 0.0)
        return None

    async def _available_plus_unrealized(
        self, agent: AgentRecord, client: AsterDexClient | None
    ) -> float | None:
        if client is None:
            return None
        balances = await client.get_account_balances()
        stable = next((b for b in balances if b.asset in BALANCE_ASSETS), None)
        if stable is None:
            return None
        base = stable.available_balance or stable.wallet_balance
        positions = await client.get_positions()
        return base + sum(p.unrealized_profit for p in positions)

    async def _order_replay(
        self, agent: AgentRecord, client: AsterDexClient | None
    ) -> float | None:
        balance = agent.initial_capital
        for order in await self.order_repo.get_filled(agent.id):
            if not order.avg_filled_price or not order.filled_quantity:
                continue
            value = order.avg_filled_price * order.filled_quantity
            balance += -value if order.side == "BUY" else value
        return balance
