"""Unit tests for TradingEngine lifecycle and trading pass."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from arena_trader.engine import TradingEngine
from arena_trader.models.decision import Decision
from arena_trader.models.exchange import ExchangePosition
from arena_trader.order_executor import OrderResult


@pytest.fixture
def advisor():
    a = MagicMock()
    a.analyze_market = AsyncMock(return_value=Decision(action="HOLD", reasoning="wait"))
    return a


@pytest.fixture
def client():
    c = MagicMock()
    c.get_positions = AsyncMock(return_value=[])
    return c


@pytest.fixture
def components(agent, quotes, client, position_repo):
    agent_repo = AsyncMock()
    agent_repo.get_active.return_value = [agent]
    order_repo = AsyncMock()
    order_repo.count_since.return_value = 0
    event_repo = AsyncMock()

    registry = MagicMock()
    registry.get.return_value = client

    market_data = MagicMock()
    market_data.fetch_quotes = AsyncMock(return_value=quotes)
    market_data.exchange_symbol.side_effect = lambda asset: f"{asset}USDT"

    reconciler = MagicMock()
    reconciler.sync_all = AsyncMock()
    reconciler.sync_agent = AsyncMock()
    reconciler.asset_for.side_effect = lambda symbol: symbol.removesuffix("USDT")

    accountant = MagicMock()
    accountant.refresh_all = AsyncMock()
    accountant.refresh_agent = AsyncMock(return_value=100.0)

    executor = MagicMock()
    executor.execute = AsyncMock(return_value=OrderResult(success=True, status="FILLED"))

    return {
        "agent_repo": agent_repo,
        "order_repo": order_repo,
        "position_repo": position_repo,
        "event_repo": event_repo,
        "registry": registry,
        "market_data": market_data,
        "reconciler": reconciler,
        "accountant": accountant,
        "executor": executor,
    }


@pytest.fixture
def engine(settings, components, advisor):
    slow = settings.model_copy(update={"RESUME_TRADE_DELAY_SECONDS": 3600})
    return TradingEngine(slow, advisor_factory=lambda agent: advisor, **components)


class TestLifecycle:
    async def test_initial_status(self, engine):
        assert engine.status() == {"isRunning": False, "isPaused": True, "isTrading": False}

    async def test_resume_requires_running(self, engine):
        result = await engine.resume()
        assert result == {"success": False, "message": "Trading engine is not running"}

    async def test_start_resume_pause_stop(self, engine, components):
        await engine.start()
        assert engine.status()["isRunning"] is True
        assert engine.status()["isPaused"] is True

        result = await engine.resume()
        assert result == {"success": True, "message": "Trading resumed"}
        assert engine.status()["isPaused"] is False
        components["accountant"].refresh_all.assert_awaited()

        again = await engine.resume()
        assert again == {"success": False, "message": "Trading is already active"}

        paused = await engine.pause()
        assert paused == {"success": True, "message": "Trading paused"}
        assert (await engine.pause())["message"] == "Trading is already paused"

        await engine.stop()
        assert engine.status() == {"isRunning": False, "isPaused": True, "isTrading": False}

    async def test_pause_with_close_positions(self, engine, client, components):
        client.get_positions.return_value = [
            ExchangePosition(symbol="BTCUSDT", position_amt=0.0015, entry_price=50000.0)
        ]
        await engine.start()
        await engine.resume()

        result = await engine.pause(close_positions=True)
        await engine.stop()

        assert result == {"success": True, "message": "Trading paused and 1 positions closed"}
        components["executor"].execute.assert_awaited_once()

    async def test_pause_lets_in_flight_pass_finish(self, engine, advisor, components):
        gate = asyncio.Event()
        started = asyncio.Event()

        async def slow_decision(context):
            started.set()
            await gate.wait()
            return Decision(
                action="OPEN",
                direction="LONG",
                asset="BTC",
                strategy="momentum",
                position_size_percent=20,
            )

        advisor.analyze_market.side_effect = slow_decision
        engine.settings = engine.settings.model_copy(update={"RESUME_TRADE_DELAY_SECONDS": 0})
        await engine.start()
        await engine.resume()
        await asyncio.wait_for(started.wait(), timeout=1)

        assert (await engine.pause())["success"] is True
        assert engine.status()["isTrading"] is True

        draining = set(engine._draining_tasks)
        gate.set()
        await asyncio.wait_for(asyncio.gather(*draining), timeout=1)
        await engine.stop()

        components["executor"].execute.assert_awaited_once()
        assert engine.status()["isTrading"] is False

    async def test_stop_cancels_pass_left_running_by_pause(self, engine, advisor, components):
        gate = asyncio.Event()
        started = asyncio.Event()

        async def slow_decision(context):
            started.set()
            await gate.wait()
            return Decision(
                action="OPEN",
                direction="LONG",
                asset="BTC",
                strategy="momentum",
                position_size_percent=20,
            )

        advisor.analyze_market.side_effect = slow_decision
        engine.settings = engine.settings.model_copy(update={"RESUME_TRADE_DELAY_SECONDS": 0})
        await engine.start()
        await engine.resume()
        await asyncio.wait_for(started.wait(), timeout=1)

        await engine.pause()
        await engine.stop()
        gate.set()
        await asyncio.sleep(0)

        assert components["executor"].execute.await_count == 0
        assert engine.status() == {"isRunning": False, "isPaused": True, "isTrading": False}


class TestTradingCadence:
    async def test_interval_measured_from_pass_start(self, engine):
        clock = [0.0]
        sleeps: list[float] = []
        durations = [30.0, 150.0, 10.0]

        async def fake_sleep(delay):
            sleeps.append(delay)
            clock[0] += delay

        async def timed_pass():
            clock[0] += durations.pop(0)
            if not durations:
                engine.is_paused = True
            return True

        engine.is_running = True
        engine.is_paused = False
        engine._monotonic = lambda: clock[0]
        engine.run_trading_pass = timed_pass

        with patch("arena_trader.engine.asyncio.sleep", fake_sleep):
            await engine._trading_loop(engine._generation)

        # 30s pass sleeps the remaining 90s; a 150s overrun starts the next pass at once
        assert sleeps == [3600, 90.0, 0.0]


class TestTradingPass:
    async def test_scheduled_pass_skipped_while_paused(self, engine, advisor):
        assert await engine.run_trading_pass() is False
        advisor.analyze_market.assert_not_awaited()

    async def test_single_cycle_runs_while_paused(self, engine, advisor):
        assert await engine.run_single_cycle() is True
        advisor.analyze_market.assert_awaited_once()

    async def test_pass_skipped_while_in_flight(self, engine, advisor):
        async with engine._pass_lock:
            assert engine.status()["isTrading"] is True
            assert await engine.run_single_cycle() is False
        advisor.analyze_market.assert_not_awaited()

    async def test_no_market_data_aborts(self, engine, advisor, components):
        components["market_data"].fetch_quotes.return_value = []
        await engine.run_single_cycle()
        advisor.analyze_market.assert_not_awaited()

    async def test_hold_does_nothing(self, engine, components):
        await engine.run_single_cycle()
        components["executor"].execute.assert_not_awaited()
        components["event_repo"].record.assert_not_awaited()

    async def test_rejected_decision_recorded(self, engine, advisor, components):
        advisor.analyze_market.return_value = Decision(
            action="OPEN", asset="BTC", strategy="momentum", position_size_percent=20
        )
        await engine.run_single_cycle()

        components["executor"].execute.assert_not_awaited()
        args = components["event_repo"].record.await_args.args
        assert args[1] == "DECISION_REJECTED"
        assert "must specify direction" in args[2]

    async def test_open_executes_sized_order(self, engine, advisor, agent, client, components):
        advisor.analyze_market.return_value = Decision(
            action="OPEN",
            direction="LONG",
            asset="BTC",
            strategy="momentum",
            position_size_percent=20,
            reasoning="breakout",
            confidence=0.7,
        )
        await engine.run_single_cycle()

        call = components["executor"].execute.await_args
        assert call.args[0] is agent
        assert call.args[1] is client
        assert call.kwargs["direction"] == "LONG"
        assert call.kwargs["symbol"] == "BTCUSDT"
        assert call.kwargs["quantity"] == Decimal("0.001")
        components["reconciler"].sync_agent.assert_awaited_once_with(agent, client)
        components["accountant"].refresh_agent.assert_awaited_once_with(agent)

    async def test_size_capped_by_validator(self, engine, advisor, components):
        advisor.analyze_market.return_value = Decision(
            action="OPEN",
            direction="SHORT",
            asset="ETH",
            strategy="swing",
            position_size_percent=90,
        )
        await engine.run_single_cycle()
        decision = components["executor"].execute.await_args.args[2]
        assert decision.position_size_percent == 25.0

    async def test_missing_credentials_skip_execution(self, engine, advisor, components):
        components["registry"].get.return_value = None
        advisor.analyze_market.return_value = Decision(
            action="OPEN",
            direction="LONG",
            asset="BTC",
            strategy="momentum",
            position_size_percent=20,
        )
        await engine.run_single_cycle()

        advisor.analyze_market.assert_awaited_once()
        components["market_data"].fetch_quotes.assert_awaited_once_with(None)
        components["executor"].execute.assert_not_awaited()

    async def test_close_uses_position_side(self, engine, advisor, agent, components, position_repo):
        await position_repo.create(
            {
                "agent_id": agent.id,
                "asset": "ETH",
                "side": "SHORT",
                "size": 0.0109,
                "entry_price": 2700.0,
                "current_price": 3000.0,
            }
        )
        advisor.analyze_market.return_value = Decision(
            action="CLOSE", asset="ETH", strategy="swing", reasoning="cut loss"
        )
        await engine.run_single_cycle()

        stop_loss = components["event_repo"].record.await_args_list[0].args
        assert stop_loss[1] == "STOP_LOSS"
        call = components["executor"].execute.await_args
        assert call.kwargs["direction"] == "SHORT"
        assert call.kwargs["quantity"] == Decimal("0.010")

    async def test_agent_failure_does_not_stop_pass(self, engine, advisor, agent, components):
        other = agent.model_copy(update={"id": "agent-2", "name": "Grok-4"})
        components["agent_repo"].get_active.return_value = [agent, other]
        advisor.analyze_market.side_effect = [RuntimeError("boom"), Decision(action="HOLD")]
        await engine.run_single_cycle()
        assert advisor.analyze_market.await_count == 2


class TestCloseAll:
    async def test_closes_every_position(self, engine, client, components):
        client.get_positions.return_value = [
            ExchangePosition(symbol="BTCUSDT", position_amt=0.0015),
            ExchangePosition(symbol="ETHUSDT", position_amt=-0.0109),
        ]
        components["executor"].execute.side_effect = [
            OrderResult(success=True, status="FILLED"),
            OrderResult(success=False, error_message="rejected"),
        ]

        result = await engine.close_all_positions()

        assert result == {"closed": 1, "errors": 1}
        first, second = components["executor"].execute.await_args_list
        assert first.kwargs["quantity"] == Decimal("0.001")
        assert first.kwargs["direction"] == "LONG"
        assert first.args[2].action == "CLOSE"
        assert second.kwargs["direction"] == "SHORT"
        assert second.kwargs["symbol"] == "ETHUSDT"

    async def test_skips_agents_without_credentials(self, engine, components):
        components["registry"].get.return_value = None
        assert await engine.close_all_positions() == {"closed": 0, "errors": 0}
