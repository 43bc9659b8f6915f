"""Indicator engine -- Supertrend, SMA and RSI over candle windows, plus entry/exit rules."""

from spotbot.signals.engine import (
    compute_snapshot,
    is_entry_signal,
    is_exit_signal,
    required_history,
)
from spotbot.signals.indicators import (
    compute_atr,
    compute_rsi,
    compute_sma,
    compute_supertrend,
    compute_true_range,
)
from spotbot.signals.models import IndicatorSnapshot

__all__ = [
    "IndicatorSnapshot",
    "compute_atr",
    "compute_rsi",
    "compute_sma",
    "compute_snapshot",
    "compute_supertrend",
    "compute_true_range",
    "is_entry_signal",
    "is_exit_signal",
    "required_history",
]
