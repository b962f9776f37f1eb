"""Exchange DTOs: order response, position, account."""

from pydantic import BaseModel


class ExchangeOrderResponse(BaseModel):
    order_id: str
    symbol: str
    status: str  # NEW, PARTIALLY_FILLED, FILLED, CANCELED, REJECTED, EXPIRED
    side: str
    orig_qty: float = 0.0
    executed_qty: float = 0.0
    avg_price: float = 0.0


class ExchangePosition(BaseModel):
    symbol: str  # exchange symbol, e.g. BTCUSDT
    position_amt: float  # signed: positive long, negative short
    entry_price: float = 0.0
    mark_price: float = 0.0
    unrealized_profit: float = 0.0
    leverage: float = 1.0

    @property
    def side(self) -> str:
        return "LONG" if self.position_amt > 0 else "SHORT"


class ExchangeAsset(BaseModel):
    asset: str
    wallet_balance: float = 0.0
    available_balance: float = 0.0
    unrealized_profit: float = 0.0


class ExchangeAccount(BaseModel):
    total_margin_balance: float | None = None
    total_wallet_balance: float | None = None
    total_unrealized_profit: float | None = None
    available_balance: float | None = None
    assets: list[ExchangeAsset] = []
    positions: list[ExchangePosition] = []
