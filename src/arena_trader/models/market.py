"""MarketQuote Pydantic model."""

from pydantic import BaseModel


class MarketQuote(BaseModel):
    symbol: str  # canonical asset, e.g. BTC
    current_price: float
    change_24h: float = 0.0  # percent
    volume_24h: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0
