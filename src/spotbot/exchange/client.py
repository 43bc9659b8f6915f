"""Abstract exchange gateway interface.

Defines the contract for all venue implementations. Scanner, sizer,
monitor and reconciler depend only on this interface, keeping
Binance/ccxt specifics isolated in the concrete implementation.

Implementations must translate venue errors into spotbot.exceptions types
and apply the configured timeout to every remote call.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from spotbot.exchange.stream import KlineSubscription
from spotbot.exchange.types import MarketInfo
from spotbot.models import Candle, OpenOrder, OrderResult


class ExchangeGateway(ABC):
    """Abstract base class for spot venue gateways."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close subscriptions and release client resources."""
        ...

    @abstractmethod
    async def check_connectivity(self) -> None:
        """Ping the venue. Raises TransientRemoteError when unreachable."""
        ...

    @abstractmethod
    async def fetch_balance(self, asset: str) -> Decimal:
        """Return the free balance of an asset.

        Raises:
            AuthError: If credentials are missing or the venue rejects them.
        """
        ...

    @abstractmethod
    async def fetch_candles(self, pair: str, interval: str, limit: int) -> list[Candle]:
        """Return up to ``limit`` candles, oldest first.

        Raises:
            NotFoundError: Unknown pair.
            TransientRemoteError: Timeout or network failure.
        """
        ...

    @abstractmethod
    async def fetch_price(self, pair: str) -> Decimal:
        """Return the last traded price of a pair."""
        ...

    @abstractmethod
    async def fetch_markets(self) -> dict[str, MarketInfo]:
        """Return a fresh metadata snapshot of every pair, keyed by symbol."""
        ...

    @abstractmethod
    async def place_market_buy(self, pair: str, quantity: Decimal) -> OrderResult:
        """Place a market buy for ``quantity`` base units.

        Raises:
            InsufficientFundsError, RejectedByVenueError, TransientRemoteError.
        """
        ...

    @abstractmethod
    async def place_market_sell(self, pair: str, quantity: Decimal) -> OrderResult:
        """Place a market sell for ``quantity`` base units."""
        ...

    @abstractmethod
    async def fetch_open_orders(self) -> list[OpenOrder]:
        """Return every live open order on the account."""
        ...

    @abstractmethod
    def subscribe_klines(
        self, pair: str, interval: str, queue_size: int = 16
    ) -> KlineSubscription:
        """Start streaming klines for a pair and return the subscription handle.

        Subscribing twice to the same (pair, interval) returns the existing handle.
        """
        ...

    @abstractmethod
    async def unsubscribe(self, pair: str, interval: str) -> None:
        """Stop streaming klines for a pair. No-op when not subscribed."""
        ...
