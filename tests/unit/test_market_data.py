"""Unit tests for MarketDataAggregator."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from arena_trader.market_data import MarketDataAggregator


def _ticker(last: str, change: str = "1.5") -> dict:
    return {
        "lastPrice": last,
        "priceChangePercent": change,
        "volume": "1234.5",
        "highPrice": last,
        "lowPrice": last,
    }


@pytest.fixture
def client():
    c = MagicMock()
    c.get_24hr_stats = AsyncMock(
        side_effect=lambda symbol: {
            "BTCUSDT": _ticker("50000.1"),
            "ETHUSDT": _ticker("3000.5", "-2.0"),
            "BNBUSDT": _ticker("600.25"),
        }[symbol]
    )
    return c


class TestExchangeQuotes:
    async def test_all_assets(self, settings, client):
        aggregator = MarketDataAggregator(settings)
        quotes = await aggregator.fetch_quotes(client)

        assert [q.symbol for q in quotes] == ["BTC", "ETH", "BNB"]
        assert quotes[0].current_price == 50000.1
        assert quotes[1].change_24h == -2.0
        assert quotes[2].volume_24h == 1234.5

    async def test_failed_asset_is_skipped(self, settings, client):
        def stats(symbol):
            if symbol == "ETHUSDT":
                raise httpx.ConnectError("boom")
            return _ticker("1.0")

        client.get_24hr_stats.side_effect = stats
        quotes = await MarketDataAggregator(settings).fetch_quotes(client)
        assert [q.symbol for q in quotes] == ["BTC", "BNB"]

    async def test_exchange_symbol_uses_quote_asset(self, settings):
        assert MarketDataAggregator(settings).exchange_symbol("BTC") == "BTCUSDT"


class TestFallbackQuotes:
    async def test_parses_aggregator_payload(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json={
                    "RAW": {
                        "BTC": {
                            "USD": {
                                "PRICE": 50000.0,
                                "CHANGEPCT24HOUR": 3.2,
                                "TOTALVOLUME24H": 100.0,
                                "HIGH24HOUR": 51000.0,
                                "LOW24HOUR": 49000.0,
                            }
                        },
                        "ETH": {"USD": {"PRICE": 3000.0}},
                    }
                },
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            quotes = await MarketDataAggregator(settings, http_client=http).fetch_quotes(None)

        assert seen["params"] == {"fsyms": "BTC,ETH,BNB", "tsyms": "USD"}
        assert [q.symbol for q in quotes] == ["BTC", "ETH"]
        assert quotes[0].high_24h == 51000.0
        assert quotes[1].change_24h == 0
        assert quotes[1].low_24h == 3000.0

    async def test_http_error_yields_empty(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="down"))
        async with httpx.AsyncClient(transport=transport) as http:
            quotes = await MarketDataAggregator(settings, http_client=http).fetch_quotes(None)
        assert quotes == []
