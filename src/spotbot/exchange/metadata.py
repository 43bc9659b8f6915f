"""Process-scoped cache of exchange metadata (all pairs, one snapshot).

The snapshot is refreshed by whichever caller first observes it to be
older than ttl_seconds. Concurrent evaluators may both refresh at the same
time; the result is identical, so no lock is taken.
"""

import time
from collections.abc import Callable

from spotbot.exceptions import NotFoundError
from spotbot.exchange.client import ExchangeGateway
from spotbot.exchange.types import ExchangeFilters, MarketInfo
from spotbot.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class MarketMetadataCache:
    """Age-invalidated snapshot of every pair's MarketInfo.

    Args:
        gateway: Exchange gateway providing fetch_markets().
        ttl_seconds: Freshness window for the snapshot.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._ttl = ttl_seconds
        self._clock = clock
        self._markets: dict[str, MarketInfo] | None = None
        self._updated_at = 0.0

    def is_fresh(self) -> bool:
        return self._markets is not None and self._clock() - self._updated_at < self._ttl

    async def get_markets(self) -> dict[str, MarketInfo]:
        """Return the snapshot, refreshing it first when stale."""
        if self.is_fresh():
            assert self._markets is not None
            return self._markets
        markets = await self._gateway.fetch_markets()
        self._markets = markets
        self._updated_at = self._clock()
        logger.debug("exchange_metadata_refreshed", pairs=len(markets))
        return markets

    async def get_filters(self, pair: str) -> ExchangeFilters:
        """Return the precision filters for a pair.

        Raises:
            NotFoundError: If the pair is absent from the snapshot.
        """
        markets = await self.get_markets()
        market = markets.get(pair)
        if market is None:
            raise NotFoundError(f"Symbol {pair} not found in exchange metadata")
        return market.filters

    async def quote_pairs(self, asset: str) -> list[str]:
        """Return active spot pairs quoted in ``asset``, in venue order."""
        asset = asset.upper()
        markets = await self.get_markets()
        return [
            symbol
            for symbol, market in markets.items()
            if market.spot and market.active and market.quote.upper() == asset
        ]
