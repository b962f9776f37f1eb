"""Unit tests for the trading control API."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from arena_trader.api.app import create_app

HEADERS = {"X-Trading-API-Key": "secret-key"}


@pytest.fixture
def engine():
    e = MagicMock()
    e.status.return_value = {"isRunning": True, "isPaused": True, "isTrading": False}
    e.resume = AsyncMock(return_value={"success": True, "message": "Trading resumed"})
    e.pause = AsyncMock(return_value={"success": True, "message": "Trading paused"})
    e.close_all_positions = AsyncMock(return_value={"closed": 2, "errors": 0})
    e.run_single_cycle = AsyncMock(return_value=True)
    return e


@pytest.fixture
def api(engine, settings):
    return TestClient(create_app(engine, settings))


class TestAuth:
    def test_health_is_open(self, api):
        assert api.get("/health").json() == {"status": "ok"}

    def test_missing_key_rejected(self, api, engine):
        response = api.get("/api/trading/status")
        assert response.status_code == 401
        assert response.json()["detail"] == "Unauthorized - Invalid API key"
        engine.status.assert_not_called()

    def test_wrong_key_rejected(self, api):
        response = api.post("/api/trading/resume", headers={"X-Trading-API-Key": "nope"})
        assert response.status_code == 401

    def test_query_parameter_accepted(self, api):
        response = api.get("/api/trading/status", params={"apiKey": "secret-key"})
        assert response.status_code == 200

    def test_unconfigured_key_is_server_error(self, engine, settings):
        unconfigured = settings.model_copy(update={"TRADING_CONTROL_API_KEY": ""})
        api = TestClient(create_app(engine, unconfigured))
        response = api.get("/api/trading/status", headers=HEADERS)
        assert response.status_code == 500
        assert response.json()["detail"] == "Trading control authentication not configured"


class TestRoutes:
    def test_status(self, api):
        response = api.get("/api/trading/status", headers=HEADERS)
        assert response.json() == {"isRunning": True, "isPaused": True, "isTrading": False}

    def test_resume(self, api, engine):
        response = api.post("/api/trading/resume", headers=HEADERS)
        assert response.json() == {"success": True, "message": "Trading resumed"}
        engine.resume.assert_awaited_once()

    def test_pause_without_body(self, api, engine):
        response = api.post("/api/trading/pause", headers=HEADERS)
        assert response.status_code == 200
        engine.pause.assert_awaited_once_with(close_positions=False)

    def test_pause_closing_positions(self, api, engine):
        api.post("/api/trading/pause", headers=HEADERS, json={"closePositions": True})
        engine.pause.assert_awaited_once_with(close_positions=True)

    def test_close_all_positions(self, api):
        body = api.post("/api/trading/close-all-positions", headers=HEADERS).json()
        assert body["success"] is True
        assert body["closed"] == 2
        assert body["errors"] == 0

    def test_run_cycle(self, api):
        body = api.post("/api/trading/run-cycle", headers=HEADERS).json()
        assert body["success"] is True
        assert body["message"] == "Trading cycle completed"
        assert "timestamp" in body

    def test_run_cycle_already_running(self, api, engine):
        engine.run_single_cycle.return_value = False
        body = api.post("/api/trading/run-cycle", headers=HEADERS).json()
        assert body["success"] is False
        assert body["message"] == "A trading cycle is already running"
