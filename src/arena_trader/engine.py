"""Trading engine: scheduler state machine + per-agent trading pass."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

import structlog

from arena_trader.advisory.factory import build_advisor
from arena_trader.models.decision import AdvisoryContext, Decision, OpenPositionView
from arena_trader.order_sizing import SizingParams, size_close, size_open, truncate_quantity
from arena_trader.risk_validator import RiskLimits, validate

if TYPE_CHECKING:
    from arena_trader.accountant import BalanceAccountant
    from arena_trader.advisory.base import AdvisoryClient
    from arena_trader.config import Settings
    from arena_trader.db.repository import (
        ActivityEventRepository,
        AgentRepository,
        OrderRepository,
        PositionRepository,
    )
    from arena_trader.exchange.asterdex_client import AsterDexClient
    from arena_trader.exchange.registry import ExchangeClientRegistry
    from arena_trader.market_data import MarketDataAggregator
    from arena_trader.models.market import MarketQuote
    from arena_trader.models.records import AgentRecord, PositionRecord
    from arena_trader.order_executor import OrderExecutor
    from arena_trader.reconciler import PositionReconciler

logger = structlog.get_logger()


def _position_view(position: PositionRecord, quote: MarketQuote | None) -> OpenPositionView:
    price = quote.current_price if quote is not None else position.current_price
    move = (price - position.entry_price) * position.size
    return OpenPositionView(
        asset=position.asset,
        side=position.side,
        size=position.size,
        entry_price=position.entry_price,
        current_price=price,
        unrealized_pnl=move if position.side == "LONG" else -move,
    )


class TradingEngine:
    """Long-lived service owning the three background loops.

    States: stopped -> running/paused -> running/active -> running/paused -> stopped.
    Balance refresh and position sync run whenever the engine is running;
    trading passes run only while active.
    """

    def __init__(
        self,
        settings: Settings,
        agent_repo: AgentRepository,
        order_repo: OrderRepository,
        position_repo: PositionRepository,
        event_repo: ActivityEventRepository,
        registry: ExchangeClientRegistry,
        market_data: MarketDataAggregator,
        reconciler: PositionReconciler,
        accountant: BalanceAccountant,
        executor: OrderExecutor,
        advisor_factory: Callable[[AgentRecord], AdvisoryClient | None] | None = None,
    ) -> None:
        self.settings = settings
        self.agent_repo = agent_repo
        self.order_repo = order_repo
        self.position_repo = position_repo
        self.event_repo = event_repo
        self.registry = registry
        self.market_data = market_data
        self.reconciler = reconciler
        self.accountant = accountant
        self.executor = executor
        self.limits = RiskLimits.from_settings(settings)
        self.sizing = SizingParams.from_settings(settings)
        self._advisor_factory = advisor_factory or (
            lambda agent: build_advisor(agent.name, settings)
        )
        self._advisors: dict[str, AdvisoryClient | None] = {}

        self.is_running = False
        self.is_paused = True
        self._generation = 0
        self._pass_lock = asyncio.Lock()
        self._balance_task: asyncio.Task | None = None
        self._position_task: asyncio.Task | None = None
        self._trading_task: asyncio.Task | None = None
        self._draining_tasks: set[asyncio.Task] = set()
        self._monotonic: Callable[[], float] = time.monotonic

    # --- Lifecycle ---

    def status(self) -> dict:
        return {
            "isRunning": self.is_running,
            "isPaused": self.is_paused,
            "isTrading": self._pass_lock.locked(),
        }

    async def start(self) -> None:
        """stopped -> running/paused. Background upkeep loops start; trading does not."""
        if self.is_running:
            logger.info("engine_already_running")
            return
        self.is_running = True
        self.is_paused = True
        self._balance_task = asyncio.create_task(
            self._periodic(
                "balance_refresh",
                self.accountant.refresh_all,
                self.settings.BALANCE_REFRESH_SECONDS,
            )
        )
        self._position_task = asyncio.create_task(
            self._periodic(
                "position_sync",
                self.reconciler.sync_all,
                self.settings.POSITION_SYNC_SECONDS,
            )
        )
        logger.info("engine_started", paused=True)

    async def resume(self) -> dict:
        if not self.is_running:
            return {"success": False, "message": "Trading engine is not running"}
        if not self.is_paused:
            return {"success": False, "message": "Trading is already active"}

        self.is_paused = False
        self._generation += 1
        try:
            await self.accountant.refresh_all()
        except Exception:
            logger.exception("resume_balance_refresh_error")
        self._trading_task = asyncio.create_task(self._trading_loop(self._generation))
        logger.info("trading_resumed", interval=self.settings.TRADING_INTERVAL_SECONDS)
        return {"success": True, "message": "Trading resumed"}

    async def pause(self, close_positions: bool = False) -> dict:
        if self.is_paused:
            return {"success": False, "message": "Trading is already paused"}

        self.is_paused = True
        task, self._trading_task = self._trading_task, None
        if self._pass_lock.locked() and task is not None and not task.done():
            # A pass in flight completes; its loop exits on the next state check.
            self._draining_tasks.add(task)
            task.add_done_callback(self._draining_tasks.discard)
        else:
            await self._cancel(task)
        logger.info("trading_paused", close_positions=close_positions)

        if not close_positions:
            return {"success": True, "message": "Trading paused"}
        result = await self.close_all_positions()
        return {
            "success": True,
            "message": f"Trading paused and {result['closed']} positions closed",
        }

    async def stop(self) -> None:
        """Cancel every loop unconditionally and return to stopped."""
        self.is_running = False
        self.is_paused = True
        self._generation += 1
        tasks = (self._trading_task, self._balance_task, self._position_task)
        for task in (*tasks, *self._draining_tasks):
            await self._cancel(task)
        self._draining_tasks.clear()
        self._trading_task = self._balance_task = self._position_task = None
        logger.info("engine_stopped")

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # --- Loops ---

    async def _periodic(self, name: str, job: Callable, interval: float) -> None:
        while self.is_running:
            try:
                await job()
            except Exception:
                logger.exception(f"{name}_error")
            await asyncio.sleep(interval)

    async def _trading_loop(self, generation: int) -> None:
        """Passes on a fixed cadence; a pass that overruns the interval is followed immediately."""
        await asyncio.sleep(self.settings.RESUME_TRADE_DELAY_SECONDS)
        deadline = self._monotonic()
        while self._is_current(generation):
            await self.run_trading_pass()
            if not self._is_current(generation):
                break
            now = self._monotonic()
            deadline = max(deadline + self.settings.TRADING_INTERVAL_SECONDS, now)
            await asyncio.sleep(deadline - now)

    def _is_current(self, generation: int) -> bool:
        return self.is_running and not self.is_paused and generation == self._generation

    # --- Trading pass ---

    async def run_trading_pass(self) -> bool:
        """Scheduled pass. Silently skipped while paused or while another pass runs."""
        if self.is_paused:
            logger.debug("trading_pass_skipped", reason="paused")
            return False
        return await self._run_exclusive()

    async def run_single_cycle(self) -> bool:
        """One pass regardless of pause state."""
        return await self._run_exclusive()

    async def _run_exclusive(self) -> bool:
        if self._pass_lock.locked():
            logger.debug("trading_pass_skipped", reason="in_flight")
            return False
        async with self._pass_lock:
            try:
                await self._run_pass()
            except Exception:
                logger.exception("trading_pass_error")
        return True

    async def _run_pass(self) -> None:
        agents = await self.agent_repo.get_active()
        if not agents:
            logger.info("trading_pass_no_agents")
            return

        data_client = next(
            (c for c in (self.registry.get(a) for a in agents) if c is not None), None
        )
        quotes = await self.market_data.fetch_quotes(data_client)
        if not quotes:
            logger.warning("trading_pass_no_market_data")
            return

        logger.info("trading_pass_started", agents=len(agents), assets=len(quotes))
        for agent in agents:
            try:
                await self._run_agent(agent, quotes)
            except Exception:
                logger.exception("agent_pass_error", agent=agent.name)
        logger.info("trading_pass_complete")

    def _advisor_for(self, agent: AgentRecord) -> AdvisoryClient | None:
        if agent.name not in self._advisors:
            self._advisors[agent.name] = self._advisor_factory(agent)
        return self._advisors[agent.name]

    async def build_context(
        self, agent: AgentRecord, quotes: list[MarketQuote]
    ) -> AdvisoryContext:
        by_asset = {q.symbol: q for q in quotes}
        positions = await self.position_repo.get_for_agent(agent.id)
        since = datetime.now(timezone.utc) - timedelta(
            seconds=self.settings.TRADING_INTERVAL_SECONDS
        )
        return AdvisoryContext(
            agent_name=agent.name,
            current_capital=agent.current_capital,
            open_positions=[_position_view(p, by_asset.get(p.asset)) for p in positions],
            market_data=quotes,
            recent_trades=await self.order_repo.count_since(agent.id, since),
        )

    async def _run_agent(self, agent: AgentRecord, quotes: list[MarketQuote]) -> None:
        log = logger.bind(agent=agent.name)
        advisor = self._advisor_for(agent)
        if advisor is None:
            log.info("agent_skipped", reason="no_advisor")
            return

        context = await self.build_context(agent, quotes)
        decision = await advisor.analyze_market(context)
        if decision.action == "HOLD":
            log.info("decision_hold", reasoning=decision.reasoning[:200])
            return

        result = validate(decision, context, self.limits)
        if not result.is_valid:
            log.info("decision_rejected", action=decision.action, reason=result.reason)
            await self.event_repo.record(
                agent.id,
                "DECISION_REJECTED",
                f"{decision.action} {decision.asset or ''} rejected: {result.reason}",
                asset=decision.asset,
                strategy=decision.strategy,
            )
            return

        for warning in result.warnings:
            log.warning("stop_loss_triggered", asset=decision.asset, detail=warning)
            await self.event_repo.record(
                agent.id, "STOP_LOSS", warning, asset=decision.asset, strategy=decision.strategy
            )

        if result.adjusted_decision and result.adjusted_decision.position_size_percent is not None:
            decision = decision.model_copy(
                update={"position_size_percent": result.adjusted_decision.position_size_percent}
            )

        client = self.registry.get(agent)
        if client is None:
            log.info("execution_skipped", reason="no_exchange_credentials", action=decision.action)
            return

        await self._execute(agent, client, decision, context)

    async def _execute(
        self,
        agent: AgentRecord,
        client: AsterDexClient,
        decision: Decision,
        context: AdvisoryContext,
    ) -> None:
        asset = decision.asset
        if decision.action == "OPEN":
            quote = context.quote_for(asset)
            direction = decision.direction
            quantity = size_open(
                asset,
                context.current_capital,
                decision.position_size_percent,
                quote.current_price,
                self.sizing,
            )
        else:
            position = context.position_for(asset)
            direction = position.side
            quantity = size_close(asset, position.size, self.sizing)

        if quantity is None:
            logger.info("order_abandoned", agent=agent.name, asset=asset, action=decision.action)
            return

        await self.executor.execute(
            agent,
            client,
            decision,
            direction=direction,
            symbol=self.market_data.exchange_symbol(asset),
            quantity=quantity,
        )
        await self._after_order(agent, client)

    async def _after_order(self, agent: AgentRecord, client: AsterDexClient) -> None:
        try:
            await self.reconciler.sync_agent(agent, client)
        except Exception:
            logger.exception("post_order_sync_error", agent=agent.name)
        try:
            await self.accountant.refresh_agent(agent)
        except Exception:
            logger.exception("post_order_balance_error", agent=agent.name)

    # --- Liquidation ---

    async def close_all_positions(self) -> dict:
        """Reduce-only market close of every exchange position of every credentialed agent."""
        closed = errors = 0
        for agent in await self.agent_repo.get_active():
            client = self.registry.get(agent)
            if client is None:
                continue
            try:
                positions = await client.get_positions()
            except Exception:
                logger.exception("close_all_fetch_error", agent=agent.name)
                errors += 1
                continue

            for position in positions:
                asset = self.reconciler.asset_for(position.symbol)
                quantity = truncate_quantity(
                    abs(position.position_amt), self.sizing.precision_for(asset)
                )
                if quantity <= 0:
                    continue
                decision = Decision(
                    action="CLOSE",
                    asset=asset,
                    reasoning="Closed by operator request",
                )
                result = await self.executor.execute(
                    agent,
                    client,
                    decision,
                    direction=position.side,
                    symbol=position.symbol,
                    quantity=quantity,
                )
                if result.success:
                    closed += 1
                else:
                    errors += 1

            await self._after_order(agent, client)

        logger.info("close_all_positions_complete", closed=closed, errors=errors)
        return {"closed": closed, "errors": errors}
