"""Shared data models for the spot scanner bot.

CRITICAL: All monetary values use Decimal. Never use float for prices, quantities, or P&L.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class OrderSide(str, Enum):
    """Order direction."""

    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    """Trade lifecycle state. CLOSED and CLOSED_MANUALLY are terminal."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    CLOSED_MANUALLY = "CLOSED_MANUALLY"


@dataclass
class Trade:
    """A single position lifecycle record, as persisted by the TradeStore.

    exit_price and profit_loss are only ever set on the OPEN -> CLOSED
    transition; they stay None for OPEN and CLOSED_MANUALLY trades.
    """

    id: int
    pair: str
    order_id: str
    entry_price: Decimal
    quantity: Decimal
    status: TradeStatus = TradeStatus.OPEN
    exit_price: Decimal | None = None
    profit_loss: Decimal | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def key(self) -> str:
        """Identity used when matching against venue open orders."""
        return f"{self.pair}:{self.order_id}"


@dataclass
class Candle:
    """One OHLCV bucket. Sequences are ordered oldest first."""

    timestamp_ms: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal("0")

    @classmethod
    def from_ohlcv(cls, row: list) -> "Candle":
        """Build from a ccxt OHLCV row: [timestamp_ms, open, high, low, close, volume]."""
        return cls(
            timestamp_ms=int(row[0]),
            open=Decimal(str(row[1])),
            high=Decimal(str(row[2])),
            low=Decimal(str(row[3])),
            close=Decimal(str(row[4])),
            volume=Decimal(str(row[5])) if len(row) > 5 and row[5] is not None else Decimal("0"),
        )


@dataclass
class OrderResult:
    """Result of an executed market order."""

    order_id: str
    symbol: str
    side: OrderSide
    filled_qty: Decimal
    average_price: Decimal
    timestamp: float


@dataclass
class OpenOrder:
    """A live open order as reported by the venue."""

    pair: str
    order_id: str

    @property
    def key(self) -> str:
        return f"{self.pair}:{self.order_id}"


@dataclass
class KlineEvent:
    """A pushed kline update. is_closed is True only once the bar's bucket has elapsed."""

    pair: str
    interval: str
    is_closed: bool
    candle: Candle


@dataclass
class RoundSummary:
    """Outcome of one scan round, surfaced to the caller for logging."""

    asset: str
    asset_available: Decimal
    capital_for_buys: Decimal
    capital_remaining: Decimal
    open_trade_count: int
    pairs_considered: int = 0
    candidates: int = 0
    failures: int = 0
    buys: int = 0
    duration_seconds: float = 0.0
    aborted: bool = False


@dataclass
class ReconciliationReport:
    """What a boot-time reconciliation changed or noticed."""

    closed_manually: list[str] = field(default_factory=list)
    untracked_orders: list[str] = field(default_factory=list)
    skipped: bool = False
