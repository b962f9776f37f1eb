"""Trading control routes (/api/trading)."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

if TYPE_CHECKING:
    from arena_trader.config import Settings
    from arena_trader.engine import TradingEngine

logger = structlog.get_logger()


class PauseRequest(BaseModel):
    closePositions: bool = False


class ControlResponse(BaseModel):
    success: bool
    message: str


class StatusResponse(BaseModel):
    isRunning: bool
    isPaused: bool
    isTrading: bool


class CloseAllResponse(ControlResponse):
    closed: int
    errors: int


class RunCycleResponse(ControlResponse):
    timestamp: datetime


def create_trading_router(engine: TradingEngine, settings: Settings) -> APIRouter:
    """Create trading control routes, all guarded by the control API key."""

    def require_trading_auth(
        x_trading_api_key: str | None = Header(None, alias="X-Trading-API-Key"),
        api_key: str | None = Query(None, alias="apiKey"),
    ) -> None:
        expected = settings.TRADING_CONTROL_API_KEY.strip()
        if not expected:
            logger.error("trading_control_key_not_configured")
            raise HTTPException(
                status_code=500, detail="Trading control authentication not configured"
            )
        provided = (x_trading_api_key or api_key or "").strip()
        if not provided or not secrets.compare_digest(provided, expected):
            logger.warning("trading_control_auth_failed")
            raise HTTPException(status_code=401, detail="Unauthorized - Invalid API key")

    router = APIRouter(
        prefix="/api/trading",
        tags=["Trading"],
        dependencies=[Depends(require_trading_auth)],
    )

    @router.get("/status", response_model=StatusResponse)
    async def get_status():
        return engine.status()

    @router.post("/resume", response_model=ControlResponse)
    async def resume_trading():
        return await engine.resume()

    @router.post("/pause", response_model=ControlResponse)
    async def pause_trading(body: PauseRequest | None = None):
        close_positions = body.closePositions if body is not None else False
        return await engine.pause(close_positions=close_positions)

    @router.post("/close-all-positions", response_model=CloseAllResponse)
    async def close_all_positions():
        result = await engine.close_all_positions()
        return CloseAllResponse(
            success=True,
            closed=result["closed"],
            errors=result["errors"],
            message=f"Closed {result['closed']} positions, {result['errors']} errors",
        )

    @router.post("/run-cycle", response_model=RunCycleResponse)
    async def run_cycle():
        ran = await engine.run_single_cycle()
        return RunCycleResponse(
            success=ran,
            message="Trading cycle completed" if ran else "A trading cycle is already running",
            timestamp=datetime.now(timezone.utc),
        )

    return router
