"""Indicator snapshot and the entry/exit rules built on it.

Entry (scanner):  last_close > supertrend AND last_close < SMA(low, 3)
Exit (monitor):   last_close > SMA(high, 5)
"""

from spotbot.config import SignalSettings
from spotbot.exceptions import InsufficientHistoryError
from spotbot.models import Candle
from spotbot.signals.indicators import compute_rsi, compute_sma, compute_supertrend
from spotbot.signals.models import IndicatorSnapshot


def required_history(settings: SignalSettings) -> int:
    """Minimum number of candles for every rule input to be defined."""
    return max(
        settings.supertrend_atr_period + 1,
        settings.sma_low_period,
        settings.sma_high_period,
    )


def compute_snapshot(
    symbol: str,
    candles: list[Candle],
    settings: SignalSettings | None = None,
) -> IndicatorSnapshot:
    """Compute the latest indicator values for a candle window.

    Args:
        symbol: Pair the candles belong to.
        candles: Candle window, oldest first.
        settings: Indicator lookbacks; defaults to SignalSettings().

    Raises:
        InsufficientHistoryError: When the window is shorter than required_history().
    """
    settings = settings or SignalSettings()
    needed = required_history(settings)
    if len(candles) < needed:
        raise InsufficientHistoryError(
            f"{symbol}: {len(candles)} candles, need at least {needed}"
        )

    lows = [c.low for c in candles]
    highs = [c.high for c in candles]
    closes = [c.close for c in candles]

    supertrend = compute_supertrend(
        candles,
        atr_period=settings.supertrend_atr_period,
        multiplier=settings.supertrend_multiplier,
    )
    sma_low = compute_sma(lows, settings.sma_low_period)
    sma_high = compute_sma(highs, settings.sma_high_period)
    rsi = compute_rsi(closes, settings.rsi_period)

    return IndicatorSnapshot(
        symbol=symbol,
        supertrend=supertrend.values[-1],
        sma_low_3=sma_low[-1],
        sma_high_5=sma_high[-1],
        last_close=closes[-1],
        rsi=rsi[-1] if rsi else None,
    )


def is_entry_signal(snapshot: IndicatorSnapshot) -> bool:
    """Price above the Supertrend line but dipping under the recent lows average."""
    return (
        snapshot.last_close > snapshot.supertrend
        and snapshot.last_close < snapshot.sma_low_3
    )


def is_exit_signal(snapshot: IndicatorSnapshot) -> bool:
    """Price closing above the recent highs average."""
    return snapshot.last_close > snapshot.sma_high_5
