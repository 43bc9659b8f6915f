"""Technical indicator functions over candle sequences: SMA, ATR, Supertrend, RSI.

Pure functions, no I/O. Inputs are ordered oldest first; output series are
aligned to the END of the input (the last element always corresponds to the
last candle) and are shorter than the input by the indicator's warm-up.

CRITICAL: All computations use Decimal. Never use float.
"""

from dataclasses import dataclass
from decimal import Decimal

from spotbot.models import Candle

#: Precision limit for intermediate results (12 decimal places).
#: Prevents Decimal division from producing arbitrarily long representations.
_QUANTIZE = Decimal("0.000000000001")

_HUNDRED = Decimal("100")


def compute_sma(values: list[Decimal], period: int) -> list[Decimal]:
    """Simple moving average over a rolling window.

    Args:
        values: Ordered list of Decimal values (oldest first).
        period: Window length.

    Returns:
        List of length ``len(values) - period + 1``; empty when there are
        fewer than ``period`` values.
    """
    if period <= 0 or len(values) < period:
        return []

    divisor = Decimal(period)
    window_sum = sum(values[:period], Decimal("0"))
    result = [(window_sum / divisor).quantize(_QUANTIZE)]
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        result.append((window_sum / divisor).quantize(_QUANTIZE))
    return result


def compute_true_range(candles: list[Candle]) -> list[Decimal]:
    """True range for every candle after the first.

    TR = max(high - low, |high - prev_close|, |low - prev_close|)
    """
    result: list[Decimal] = []
    for prev, cur in zip(candles, candles[1:]):
        result.append(
            max(
                cur.high - cur.low,
                abs(cur.high - prev.close),
                abs(cur.low - prev.close),
            )
        )
    return result


def compute_atr(candles: list[Candle], period: int) -> list[Decimal]:
    """Average True Range with Wilder smoothing.

    The first ATR is the mean of the first ``period`` true ranges; each
    subsequent value is ``(prev * (period - 1) + tr) / period``.

    Returns:
        List of length ``len(candles) - period``; empty when there are
        not enough candles.
    """
    tr = compute_true_range(candles)
    if period <= 0 or len(tr) < period:
        return []

    p = Decimal(period)
    atr = [(sum(tr[:period], Decimal("0")) / p).quantize(_QUANTIZE)]
    for value in tr[period:]:
        atr.append(((atr[-1] * (p - 1) + value) / p).quantize(_QUANTIZE))
    return atr


@dataclass
class SupertrendResult:
    """Supertrend line and direction, aligned to the ATR series."""

    values: list[Decimal]
    uptrend: list[bool]
    start_index: int  # index in the candle list of values[0]


def compute_supertrend(
    candles: list[Candle],
    atr_period: int = 10,
    multiplier: Decimal = Decimal("3"),
) -> SupertrendResult:
    """Supertrend from final upper/lower bands around hl2 +/- multiplier * ATR.

    Band rules:
    - final upper tightens (min) while the previous close stayed below it
    - final lower tightens (max) while the previous close stayed above it
    - trend flips up when close breaks the final upper band, down when it
      breaks the final lower band; the line follows the lower band in an
      uptrend and the upper band in a downtrend.

    The first bar of the series starts in an uptrend.
    """
    atr = compute_atr(candles, atr_period)
    start = len(candles) - len(atr)
    if not atr:
        return SupertrendResult(values=[], uptrend=[], start_index=start)

    two = Decimal("2")
    final_upper: list[Decimal] = []
    final_lower: list[Decimal] = []
    values: list[Decimal] = []
    uptrend: list[bool] = []

    for idx, atr_value in enumerate(atr):
        i = start + idx
        candle = candles[i]
        hl2 = (candle.high + candle.low) / two
        basic_upper = (hl2 + multiplier * atr_value).quantize(_QUANTIZE)
        basic_lower = (hl2 - multiplier * atr_value).quantize(_QUANTIZE)

        if idx == 0:
            final_upper.append(basic_upper)
            final_lower.append(basic_lower)
            uptrend.append(True)
            values.append(basic_lower)
            continue

        prev_close = candles[i - 1].close
        upper = (
            min(basic_upper, final_upper[-1])
            if prev_close <= final_upper[-1]
            else basic_upper
        )
        lower = (
            max(basic_lower, final_lower[-1])
            if prev_close >= final_lower[-1]
            else basic_lower
        )

        if values[-1] == final_upper[-1]:
            is_up = candle.close > upper
        else:
            is_up = not candle.close < lower

        final_upper.append(upper)
        final_lower.append(lower)
        uptrend.append(is_up)
        values.append(lower if is_up else upper)

    return SupertrendResult(values=values, uptrend=uptrend, start_index=start)


def compute_rsi(values: list[Decimal], period: int) -> list[Decimal]:
    """Relative Strength Index with Wilder smoothing.

    Returns:
        List of length ``len(values) - period``; empty when there are not
        enough values. A window with no losses yields 100.
    """
    if period <= 0 or len(values) <= period:
        return []

    gains: list[Decimal] = []
    losses: list[Decimal] = []
    for prev, cur in zip(values, values[1:]):
        change = cur - prev
        gains.append(change if change > 0 else Decimal("0"))
        losses.append(-change if change < 0 else Decimal("0"))

    p = Decimal(period)
    avg_gain = sum(gains[:period], Decimal("0")) / p
    avg_loss = sum(losses[:period], Decimal("0")) / p
    result = [_rsi_value(avg_gain, avg_loss)]

    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = ((avg_gain * (p - 1) + gain) / p).quantize(_QUANTIZE)
        avg_loss = ((avg_loss * (p - 1) + loss) / p).quantize(_QUANTIZE)
        result.append(_rsi_value(avg_gain, avg_loss))
    return result


def _rsi_value(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
    if avg_loss == 0:
        return _HUNDRED.quantize(_QUANTIZE)
    rs = avg_gain / avg_loss
    return (_HUNDRED - _HUNDRED / (Decimal("1") + rs)).quantize(_QUANTIZE)
