"""Tests for OrderSizer.

All test cases use exact Decimal values. OrderSizer must:
- Floor quantities to step_size (never round up)
- Reject buys whose rounded value falls below min_notional
- Never sell more than the quantity held
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from spotbot.exceptions import BelowMinNotionalError, NotFoundError, PrecisionViolation
from spotbot.exchange.types import ExchangeFilters, round_to_step
from spotbot.position.sizing import OrderSizer


def _sizer(
    mock_gateway: MagicMock,
    price: str,
    step_size: str | None = "0.001",
    min_notional: str | None = None,
) -> OrderSizer:
    mock_gateway.fetch_price.return_value = Decimal(price)
    metadata = AsyncMock()
    metadata.get_filters.return_value = ExchangeFilters(
        symbol="XYZ/USDT",
        step_size=Decimal(step_size) if step_size else None,
        min_notional=Decimal(min_notional) if min_notional else None,
    )
    return OrderSizer(mock_gateway, metadata)


class TestSizeBuy:
    @pytest.mark.asyncio
    async def test_below_min_notional_is_rejected(self, mock_gateway: MagicMock) -> None:
        """10 USDT at price 2 -> 5.000 units worth 10 < min_notional 15."""
        sizer = _sizer(mock_gateway, price="2", min_notional="15")
        with pytest.raises(BelowMinNotionalError):
            await sizer.size_buy("XYZ/USDT", Decimal("10"))

    @pytest.mark.asyncio
    async def test_exact_quantity_at_step(self, mock_gateway: MagicMock) -> None:
        sizer = _sizer(mock_gateway, price="2", min_notional="5")
        qty, price = await sizer.size_buy("XYZ/USDT", Decimal("10"))
        assert qty == Decimal("5.000")
        assert price == Decimal("2")

    @pytest.mark.asyncio
    async def test_quantity_is_floored(self, mock_gateway: MagicMock) -> None:
        """12 / 7 = 1.714285... -> 1.714 at step 0.001."""
        sizer = _sizer(mock_gateway, price="7")
        qty, _ = await sizer.size_buy("XYZ/USDT", Decimal("12"))
        assert qty == Decimal("1.714")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", ["0.0731", "1.5", "3", "19.99", "2734.12", "64000"])
    async def test_never_spends_more_than_notional(self, mock_gateway: MagicMock, price: str) -> None:
        step = Decimal("0.00001")
        sizer = _sizer(mock_gateway, price=price, step_size=str(step))
        qty, used_price = await sizer.size_buy("XYZ/USDT", Decimal("12"))
        assert qty * used_price <= Decimal("12")
        assert qty % step == 0
        # One more step would overshoot
        assert (qty + step) * used_price > Decimal("12")

    @pytest.mark.asyncio
    async def test_missing_step_size_keeps_raw_quantity(self, mock_gateway: MagicMock) -> None:
        sizer = _sizer(mock_gateway, price="4", step_size=None)
        qty, _ = await sizer.size_buy("XYZ/USDT", Decimal("10"))
        assert qty == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_rounds_to_zero_is_rejected(self, mock_gateway: MagicMock) -> None:
        sizer = _sizer(mock_gateway, price="64000", step_size="0.001")
        with pytest.raises(BelowMinNotionalError):
            await sizer.size_buy("BTC/USDT", Decimal("12"))

    @pytest.mark.asyncio
    async def test_non_positive_price_is_rejected(self, mock_gateway: MagicMock) -> None:
        sizer = _sizer(mock_gateway, price="0")
        with pytest.raises(PrecisionViolation):
            await sizer.size_buy("XYZ/USDT", Decimal("12"))

    @pytest.mark.asyncio
    async def test_unknown_pair_propagates(self, mock_gateway: MagicMock) -> None:
        sizer = _sizer(mock_gateway, price="2")
        sizer._metadata.get_filters.side_effect = NotFoundError("NOPE/USDT")  # type: ignore[attr-defined]
        with pytest.raises(NotFoundError):
            await sizer.size_buy("NOPE/USDT", Decimal("12"))


class TestSizeSell:
    @pytest.mark.asyncio
    async def test_sell_is_floored_to_step(self, mock_gateway: MagicMock) -> None:
        sizer = _sizer(mock_gateway, price="2", step_size="0.01")
        assert await sizer.size_sell("XYZ/USDT", Decimal("5.6789")) == Decimal("5.67")
        mock_gateway.fetch_price.assert_not_awaited()


class TestRoundToStepProperties:
    @pytest.mark.parametrize("value", ["0", "0.0009", "1.2345", "999.99999", "5.000"])
    @pytest.mark.parametrize("step", ["0.001", "0.1", "1"])
    def test_floor_and_idempotent(self, value: str, step: str) -> None:
        v, s = Decimal(value), Decimal(step)
        once = round_to_step(v, s)
        assert once <= v
        assert v - once < s
        assert round_to_step(once, s) == once
