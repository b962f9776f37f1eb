"""FastAPI application factory for the control surface."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI

from arena_trader.api.trading import create_trading_router

if TYPE_CHECKING:
    from arena_trader.config import Settings
    from arena_trader.engine import TradingEngine


def create_app(engine: TradingEngine, settings: Settings) -> FastAPI:
    app = FastAPI(title="Arena Trader Control API", docs_url=None, redoc_url=None)

    @app.get("/health", tags=["System"])
    async def health_check():
        return {"status": "ok"}

    app.include_router(create_trading_router(engine, settings))
    return app
