"""Unit tests for order sizing: truncation, notional floor, close sizing."""

from __future__ import annotations

from decimal import Decimal

import pytest

from arena_trader.order_sizing import (
    SizingParams,
    format_quantity,
    size_close,
    size_open,
    truncate_quantity,
)


@pytest.fixture
def params():
    return SizingParams()


class TestTruncateQuantity:
    @pytest.mark.parametrize(
        "raw, precision, expected",
        [
            ("0.0015", 3, "0.001"),
            ("0.0019999", 3, "0.001"),
            ("1.239", 2, "1.23"),
            ("0.009", 2, "0.00"),
            ("5", 0, "5"),
        ],
    )
    def test_never_rounds_up(self, raw, precision, expected):
        assert truncate_quantity(raw, precision) == Decimal(expected)

    def test_never_exceeds_input_or_precision(self):
        for raw in ("0.12345", "3.99999", "0.0001", "123.456789"):
            qty = truncate_quantity(raw, 3)
            assert qty <= Decimal(raw)
            assert -qty.as_tuple().exponent <= 3

    def test_float_input_uses_repr(self):
        assert truncate_quantity(0.1 + 0.2, 2) == Decimal("0.30")


class TestSizeOpen:
    def test_reference_scenario_btc(self, params):
        """$100 capital, 25%, BTC $50,000, 3x -> 0.001 BTC ($50 notional)."""
        qty = size_open("BTC", 100.0, 25.0, 50000.0, params)
        assert qty == Decimal("0.001")
        assert qty * Decimal("50000") == Decimal("50")

    def test_uses_asset_precision(self, params):
        qty = size_open("BNB", 100.0, 10.0, 600.0, params)
        # margin 10, notional 30, raw 0.05 -> BNB has 2 decimals
        assert qty == Decimal("0.05")

    def test_unknown_asset_uses_default_precision(self, params):
        qty = size_open("SOL", 100.0, 10.0, 150.0, params)
        # raw 0.2 at default 2 decimals
        assert qty == Decimal("0.20")

    def test_nudged_up_to_notional_floor(self, params):
        """raw 0.00699 ETH -> 0.006 ($18) below $21; 0.007 ($21) is within 1.1x of raw."""
        qty = size_open("ETH", 23.3, 30.0, 3000.0, params)
        assert qty == Decimal("0.007")
        assert qty * Decimal("3000") >= Decimal("21")

    def test_abandoned_when_floor_needs_too_much(self, params):
        """raw 0.0003 BTC ($15) would need 0.001 BTC ($50), far beyond 1.1x."""
        assert size_open("BTC", 20.0, 25.0, 50000.0, params) is None

    def test_result_never_below_floor(self, params):
        for capital, pct, price in [
            (30.0, 23.4, 3000.0),
            (100.0, 7.0, 600.0),
            (50.0, 14.0, 2999.99),
            (1000.0, 1.0, 50000.0),
        ]:
            qty = size_open("ETH", capital, pct, price, params)
            if qty is not None:
                assert qty * Decimal(str(price)) >= Decimal("21")

    def test_invalid_inputs_return_none(self, params):
        assert size_open("BTC", 100.0, 25.0, 0.0, params) is None
        assert size_open("BTC", 0.0, 25.0, 50000.0, params) is None
        assert size_open("BTC", 100.0, 0.0, 50000.0, params) is None


class TestSizeClose:
    def test_full_position_truncated(self, params):
        assert size_close("BTC", 0.0123456, params) == Decimal("0.012")

    def test_short_size_is_absolute(self, params):
        assert size_close("ETH", -0.5, params) == Decimal("0.500")

    def test_dust_is_abandoned(self, params):
        assert size_close("BNB", 0.004, params) is None


def test_format_quantity_has_no_exponent():
    assert format_quantity(truncate_quantity("0.0000001", 8)) == "0.00000010"
    assert format_quantity(Decimal("1E-3")) == "0.001"
