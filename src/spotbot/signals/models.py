"""Signal data models.

CRITICAL: All indicator values use Decimal. Never use float for signal computations.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class IndicatorSnapshot:
    """Latest indicator values for one pair at one evaluation. Never persisted."""

    symbol: str
    supertrend: Decimal
    sma_low_3: Decimal  # SMA of lows over SignalSettings.sma_low_period
    sma_high_5: Decimal  # SMA of highs over SignalSettings.sma_high_period
    last_close: Decimal
    rsi: Decimal | None = None  # informational only, not part of any rule
