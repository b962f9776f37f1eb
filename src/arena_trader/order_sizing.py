"""Convert a percent-of-capital intent into an exchange-legal order quantity."""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, Decimal
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

if TYPE_CHECKING:
    from arena_trader.config import Settings

logger = structlog.get_logger()

MAX_NUDGE_STEPS = 100


class SizingParams(BaseModel):
    leverage: int = 3
    min_notional_usd: float = 21.0
    nudge_max_multiple: float = 1.1
    quantity_precision: dict[str, int] = {"BTC": 3, "ETH": 3, "BNB": 2}
    default_precision: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> SizingParams:
        return cls(
            leverage=settings.LEVERAGE,
            min_notional_usd=settings.MIN_NOTIONAL_USD,
            nudge_max_multiple=settings.NOTIONAL_NUDGE_MAX_MULTIPLE,
            quantity_precision=settings.QUANTITY_PRECISION,
            default_precision=settings.DEFAULT_QUANTITY_PRECISION,
        )

    def precision_for(self, asset: str) -> int:
        return self.quantity_precision.get(asset, self.default_precision)


def _step(precision: int) -> Decimal:
    return Decimal(1).scaleb(-precision)


def truncate_quantity(quantity: Decimal | float | str, precision: int) -> Decimal:
    """Truncate toward zero to `precision` decimals. Never rounds up."""
    return Decimal(str(quantity)).quantize(_step(precision), rounding=ROUND_DOWN)


def format_quantity(quantity: Decimal) -> str:
    """Plain decimal string for the exchange (no exponent)."""
    return format(quantity, "f")


def size_open(
    asset: str,
    capital: float,
    position_size_percent: float,
    price: float,
    params: SizingParams,
) -> Decimal | None:
    """Quantity for an OPEN, or None when no legal quantity exists near the intent."""
    if price <= 0 or capital <= 0 or position_size_percent <= 0:
        return None

    precision = params.precision_for(asset)
    step = _step(precision)
    d_price = Decimal(str(price))
    margin = Decimal(str(capital)) * Decimal(str(position_size_percent)) / 100
    notional = margin * params.leverage
    raw_qty = notional / d_price
    floor = Decimal(str(params.min_notional_usd))

    qty = truncate_quantity(raw_qty, precision)
    if qty > 0 and qty * d_price >= floor:
        return qty

    ceiling = raw_qty * Decimal(str(params.nudge_max_multiple))
    min_qty = (floor / d_price / step).to_integral_value(rounding=ROUND_CEILING) * step
    for _ in range(MAX_NUDGE_STEPS):
        if min_qty > ceiling:
            break
        if min_qty * d_price >= floor:
            logger.info(
                "quantity_raised_to_min_notional",
                asset=asset,
                quantity=format_quantity(min_qty),
                notional=float(min_qty * d_price),
            )
            return min_qty
        min_qty += step

    logger.info(
        "order_below_min_notional",
        asset=asset,
        raw_quantity=float(raw_qty),
        notional=float(qty * d_price),
        min_notional=params.min_notional_usd,
    )
    return None


def size_close(asset: str, position_size: float, params: SizingParams) -> Decimal | None:
    """Full position size, truncated; None when nothing is left to close."""
    qty = truncate_quantity(abs(position_size), params.precision_for(asset))
    if qty <= 0:
        return None
    return qty
