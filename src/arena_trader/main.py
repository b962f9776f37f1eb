"""Entry point: seed, start the trading engine, serve the control API."""

import asyncio

import structlog
import uvicorn

from arena_trader.accountant import BalanceAccountant
from arena_trader.api.app import create_app
from arena_trader.config import Settings
from arena_trader.db.engine import create_db_engine, create_session_factory, verify_connection
from arena_trader.db.repository import (
    ActivityEventRepository,
    AgentRepository,
    OrderRepository,
    PerformanceSnapshotRepository,
    PositionRepository,
)
from arena_trader.engine import TradingEngine
from arena_trader.exchange.registry import ExchangeClientRegistry
from arena_trader.logging_config import configure_logging
from arena_trader.market_data import MarketDataAggregator
from arena_trader.order_executor import OrderExecutor
from arena_trader.reconciler import PositionReconciler
from arena_trader.seed import seed_agents

logger = structlog.get_logger()


async def main() -> None:
    settings = Settings()
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    db_engine = create_db_engine(settings)
    session_factory = create_session_factory(db_engine)

    agent_repo = AgentRepository(session_factory)
    order_repo = OrderRepository(session_factory)
    position_repo = PositionRepository(session_factory)
    snapshot_repo = PerformanceSnapshotRepository(session_factory)
    event_repo = ActivityEventRepository(session_factory)

    registry = ExchangeClientRegistry(settings)
    reconciler = PositionReconciler(settings, agent_repo, position_repo, order_repo, registry)
    accountant = BalanceAccountant(
        settings, agent_repo, order_repo, position_repo, snapshot_repo, registry
    )
    engine = TradingEngine(
        settings=settings,
        agent_repo=agent_repo,
        order_repo=order_repo,
        position_repo=position_repo,
        event_repo=event_repo,
        registry=registry,
        market_data=MarketDataAggregator(settings),
        reconciler=reconciler,
        accountant=accountant,
        executor=OrderExecutor(order_repo, event_repo, agent_repo),
    )

    # uvicorn installs its own SIGINT/SIGTERM handlers and returns from serve() on shutdown
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(engine, settings),
            host=settings.API_HOST,
            port=settings.API_PORT,
            log_config=None,
        )
    )

    try:
        await verify_connection(db_engine)
        await seed_agents(agent_repo, snapshot_repo, event_repo, settings.SEED_INITIAL_CAPITAL)
        await engine.start()
        if settings.AUTO_RESUME:
            await engine.resume()
        await server.serve()
    except asyncio.CancelledError:
        pass
    finally:
        await engine.stop()
        await registry.clear()
        await db_engine.dispose()
        logger.info("shutdown_complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
