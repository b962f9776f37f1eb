"""AsterDex futures REST client (Binance-compatible /fapi endpoints, HMAC-SHA256 signed)."""

from __future__ import annotations

import hashlib
import hmac
import time
from urllib.parse import urlencode

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from arena_trader.models.exchange import (
    ExchangeAccount,
    ExchangeAsset,
    ExchangeOrderResponse,
    ExchangePosition,
)

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://fapi.asterdex.com"
POSITION_EPSILON = 0.000001
BALANCE_ASSETS = ("USDT", "USDC")

_transient = retry_if_exception_type((httpx.TransportError, httpx.TimeoutException))


class ExchangeAPIError(Exception):
    """Non-2xx response from the exchange."""

    def __init__(self, status_code: int, message: str, code: int | None = None) -> None:
        super().__init__(f"AsterDex API error {status_code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message


def _float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _position_from_raw(raw: dict) -> ExchangePosition:
    return ExchangePosition(
        symbol=raw.get("symbol", ""),
        position_amt=_float(raw.get("positionAmt", raw.get("position"))),
        entry_price=_float(raw.get("entryPrice")),
        mark_price=_float(raw.get("markPrice")),
        unrealized_profit=_float(raw.get("unRealizedProfit", raw.get("unrealizedProfit"))),
        leverage=_float(raw.get("leverage"), 1.0),
    )


class AsterDexClient:
    """Signed REST client for one exchange account."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        recv_window_ms: int = 5000,
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self._api_secret = api_secret.encode()
        self.base_url = base_url.rstrip("/")
        self.recv_window_ms = recv_window_ms
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    # --- Signing / transport ---

    def sign(self, query_string: str) -> str:
        return hmac.new(self._api_secret, query_string.encode(), hashlib.sha256).hexdigest()

    def _signed_query(self, params: dict) -> str:
        payload = {**params, "recvWindow": self.recv_window_ms, "timestamp": int(time.time() * 1000)}
        query = urlencode(payload)
        return f"{query}&signature={self.sign(query)}"

    async def _request(
        self, method: str, path: str, params: dict | None = None, signed: bool = True
    ) -> dict | list:
        if signed:
            query = self._signed_query(params or {})
            headers = {"X-MBX-APIKEY": self.api_key}
        else:
            query = urlencode(params or {})
            headers = {}
        response = await self._http.request(
            method,
            f"{self.base_url}{path}?{query}",
            headers=headers,
        )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error:
            body = data if isinstance(data, dict) else {}
            message = body.get("msg") or body.get("message") or response.text or "Unknown error"
            raise ExchangeAPIError(response.status_code, message, code=body.get("code"))
        return data

    @retry(
        retry=_transient,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _get(self, path: str, params: dict | None = None, signed: bool = True) -> dict | list:
        """GET, retried on transport failures. Market-data endpoints are public."""
        return await self._request("GET", path, params, signed=signed)

    # --- Market data ---

    async def get_24hr_stats(self, symbol: str) -> dict:
        """Raw 24h ticker: lastPrice, priceChangePercent, volume, highPrice, lowPrice."""
        return await self._get("/fapi/v1/ticker/24hr", {"symbol": symbol}, signed=False)

    # --- Trading ---

    async def create_order(
        self,
        symbol: str,
        side: str,
        quantity: str,
        order_type: str = "MARKET",
        reduce_only: bool = False,
    ) -> ExchangeOrderResponse:
        """Submit an order. Never retried: a timeout may still have filled."""
        params = {
            "symbol": symbol,
            "side": side,
            "type": order_type,
            "quantity": quantity,
            "newOrderRespType": "RESULT",
        }
        if reduce_only:
            params["reduceOnly"] = "true"
        data = await self._request("POST", "/fapi/v1/order", params)
        logger.info(
            "exchange_order_submitted",
            symbol=symbol,
            side=side,
            quantity=quantity,
            status=data.get("status"),
        )
        return ExchangeOrderResponse(
            order_id=str(data.get("orderId", "")),
            symbol=data.get("symbol", symbol),
            status=data.get("status", "NEW"),
            side=data.get("side", side),
            orig_qty=_float(data.get("origQty")),
            executed_qty=_float(data.get("executedQty")),
            avg_price=_float(data.get("avgPrice")),
        )

    # --- Account ---

    async def get_positions(self) -> list[ExchangePosition]:
        """Non-zero positions; falls back to the account endpoint if positionRisk fails."""
        try:
            raw = await self._get("/fapi/v2/positionRisk")
        except (ExchangeAPIError, httpx.HTTPError) as e:
            logger.warning("position_risk_unavailable", error=str(e))
            account = await self._get("/fapi/v1/account")
            raw = account.get("positions", [])
        positions = [_position_from_raw(p) for p in raw]
        return [p for p in positions if abs(p.position_amt) > POSITION_EPSILON]

    async def get_account_info(self) -> ExchangeAccount:
        data = await self._get("/fapi/v1/account")
        assets = [
            ExchangeAsset(
                asset=a.get("asset", ""),
                wallet_balance=_float(a.get("walletBalance")),
                available_balance=_float(a.get("availableBalance")),
                unrealized_profit=_float(a.get("unrealizedProfit")),
            )
            for a in data.get("assets", data.get("balances", []))
        ]

        def optional(key: str) -> float | None:
            return _float(data[key]) if data.get(key) is not None else None

        return ExchangeAccount(
            total_margin_balance=optional("totalMarginBalance"),
            total_wallet_balance=optional("totalWalletBalance"),
            total_unrealized_profit=optional("totalUnrealizedProfit"),
            available_balance=optional("availableBalance"),
            assets=assets,
            positions=[
                p
                for p in (_position_from_raw(r) for r in data.get("positions", []))
                if abs(p.position_amt) > POSITION_EPSILON
            ],
        )

    async def get_account_balances(self) -> list[ExchangeAsset]:
        """Stablecoin balances (USDT/USDC) from the account endpoint."""
        account = await self.get_account_info()
        return [a for a in account.assets if a.asset in BALANCE_ASSETS]
