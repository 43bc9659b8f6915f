"""Tests for the pure indicator functions: SMA, true range, ATR, Supertrend, RSI.

All expected values are worked by hand with exact Decimals.
"""

from decimal import Decimal

from conftest import flat_candles, make_candle
from spotbot.signals.indicators import (
    compute_atr,
    compute_rsi,
    compute_sma,
    compute_supertrend,
    compute_true_range,
)


def _d(values: list[str]) -> list[Decimal]:
    return [Decimal(v) for v in values]


class TestSMA:
    def test_rolling_window(self) -> None:
        assert compute_sma(_d(["1", "2", "3", "4", "5"]), 3) == _d(["2", "3", "4"])

    def test_output_aligned_to_end(self) -> None:
        values = _d(["10", "20", "30", "40"])
        result = compute_sma(values, 2)
        assert len(result) == len(values) - 2 + 1
        assert result[-1] == Decimal("35")

    def test_too_short_returns_empty(self) -> None:
        assert compute_sma(_d(["1", "2"]), 3) == []

    def test_repeating_fraction_is_quantized(self) -> None:
        result = compute_sma(_d(["1", "1", "2"]), 3)
        assert result == [Decimal("1.333333333333")]


class TestTrueRange:
    def test_gap_up_uses_previous_close(self) -> None:
        candles = [
            make_candle(0, "10", high="11", low="9"),
            make_candle(1, "15", high="16", low="14"),
        ]
        # max(16-14, |16-10|, |14-10|) = 6
        assert compute_true_range(candles) == [Decimal("6")]

    def test_starts_from_second_candle(self) -> None:
        assert len(compute_true_range(flat_candles(5))) == 4


class TestATR:
    def test_flat_series(self) -> None:
        atr = compute_atr(flat_candles(15), 10)
        assert len(atr) == 5
        assert all(v == Decimal("2") for v in atr)

    def test_wilder_smoothing(self) -> None:
        candles = flat_candles(11)
        candles.append(make_candle(11 * 3_600_000, "80", high="81", low="79"))
        atr = compute_atr(candles, 10)
        # TR of the crash bar = |79 - 100| = 21 -> (2 * 9 + 21) / 10
        assert atr[-1] == Decimal("3.9")

    def test_not_enough_candles(self) -> None:
        assert compute_atr(flat_candles(10), 10) == []


class TestSupertrend:
    def test_flat_series_stays_up_on_lower_band(self) -> None:
        result = compute_supertrend(flat_candles(15), atr_period=10, multiplier=Decimal("3"))
        assert result.start_index == 10
        assert len(result.values) == 5
        # hl2 100 - 3 * ATR 2
        assert all(v == Decimal("94") for v in result.values)
        assert all(result.uptrend)

    def test_close_below_final_lower_flips_down(self) -> None:
        candles = flat_candles(15)
        candles.append(make_candle(15 * 3_600_000, "80", high="81", low="79"))
        result = compute_supertrend(candles, atr_period=10, multiplier=Decimal("3"))
        assert result.uptrend[-1] is False
        # Line switches to the upper band: 80 + 3 * 3.9
        assert result.values[-1] == Decimal("91.7")

    def test_final_lower_band_never_loosens_in_uptrend(self) -> None:
        candles = flat_candles(15)
        candles.append(make_candle(15 * 3_600_000, "97.5", high="98", low="96"))
        result = compute_supertrend(candles, atr_period=10, multiplier=Decimal("3"))
        assert result.uptrend[-1] is True
        assert result.values[-1] == Decimal("94")

    def test_empty_when_no_atr(self) -> None:
        result = compute_supertrend(flat_candles(5), atr_period=10)
        assert result.values == []
        assert result.uptrend == []


class TestRSI:
    def test_alternating_series(self) -> None:
        result = compute_rsi(_d(["1", "2", "1", "2", "1"]), 2)
        assert result == [Decimal("50"), Decimal("75"), Decimal("37.5")]

    def test_no_losses_is_100(self) -> None:
        result = compute_rsi(_d(["1", "2", "3", "4"]), 2)
        assert all(v == Decimal("100") for v in result)

    def test_length(self) -> None:
        assert len(compute_rsi(_d(["1"] * 10), 2)) == 8

    def test_too_short(self) -> None:
        assert compute_rsi(_d(["1", "2"]), 2) == []
