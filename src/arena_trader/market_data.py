"""Market data aggregation: exchange tickers first, public aggregator as fallback."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from arena_trader.models.market import MarketQuote

if TYPE_CHECKING:
    from arena_trader.config import Settings
    from arena_trader.exchange.asterdex_client import AsterDexClient

logger = structlog.get_logger()


class MarketDataAggregator:
    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._http = http_client

    def exchange_symbol(self, asset: str) -> str:
        return f"{asset}{self.settings.QUOTE_ASSET}"

    async def fetch_quotes(self, client: AsterDexClient | None) -> list[MarketQuote]:
        """One quote per supported asset that could be fetched. Empty list means no data."""
        if client is None:
            return await self._fetch_fallback()

        quotes: list[MarketQuote] = []
        for asset in self.settings.SUPPORTED_ASSETS:
            try:
                stats = await client.get_24hr_stats(self.exchange_symbol(asset))
                quotes.append(
                    MarketQuote(
                        symbol=asset,
                        current_price=float(stats["lastPrice"]),
                        change_24h=float(stats.get("priceChangePercent", 0)),
                        volume_24h=float(stats.get("volume", 0)),
                        high_24h=float(stats.get("highPrice", 0)),
                        low_24h=float(stats.get("lowPrice", 0)),
                    )
                )
            except Exception as e:
                logger.warning("market_data_asset_failed", asset=asset, error=str(e))
        logger.info("market_data_fetched", source="exchange", assets=len(quotes))
        return quotes

    async def _fetch_fallback(self) -> list[MarketQuote]:
        """Single multi-symbol request to the public aggregator."""
        try:
            data = await self._fetch_fallback_raw()
        except Exception as e:
            logger.warning("market_data_fallback_failed", error=str(e))
            return []

        raw_by_symbol = data.get("RAW") or {}
        quotes: list[MarketQuote] = []
        for asset in self.settings.SUPPORTED_ASSETS:
            raw = (raw_by_symbol.get(asset) or {}).get("USD")
            if not raw:
                continue
            price = raw.get("PRICE") or 0
            quotes.append(
                MarketQuote(
                    symbol=asset,
                    current_price=price,
                    change_24h=raw.get("CHANGEPCT24HOUR") or 0,
                    volume_24h=raw.get("TOTALVOLUME24H") or 0,
                    high_24h=raw.get("HIGH24HOUR") or price,
                    low_24h=raw.get("LOW24HOUR") or price,
                )
            )
        logger.info("market_data_fetched", source="fallback", assets=len(quotes))
        return quotes

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _fetch_fallback_raw(self) -> dict:
        params = {"fsyms": ",".join(self.settings.SUPPORTED_ASSETS), "tsyms": "USD"}
        if self._http is not None:
            response = await self._http.get(self.settings.FALLBACK_MARKET_URL, params=params)
        else:
            async with httpx.AsyncClient(timeout=15.0) as http:
                response = await http.get(self.settings.FALLBACK_MARKET_URL, params=params)
        response.raise_for_status()
        return response.json()
