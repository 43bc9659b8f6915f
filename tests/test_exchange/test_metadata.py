"""Tests for the age-invalidated exchange metadata cache."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from spotbot.exceptions import NotFoundError
from spotbot.exchange.metadata import MarketMetadataCache
from spotbot.exchange.types import ExchangeFilters, MarketInfo


def _market(symbol: str, quote: str = "USDT", active: bool = True, spot: bool = True) -> MarketInfo:
    base = symbol.split("/")[0]
    return MarketInfo(
        symbol=symbol,
        base=base,
        quote=quote,
        active=active,
        spot=spot,
        filters=ExchangeFilters(symbol=symbol, step_size=Decimal("0.001"), min_notional=Decimal("5")),
    )


MARKETS = {
    "BTC/USDT": _market("BTC/USDT"),
    "ETH/BTC": _market("ETH/BTC", quote="BTC"),
    "OLD/USDT": _market("OLD/USDT", active=False),
    "ETH/USDT": _market("ETH/USDT"),
    "BTC/USDT:USDT": _market("BTC/USDT:USDT", spot=False),
}


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def gateway() -> AsyncMock:
    gw = AsyncMock()
    gw.fetch_markets.return_value = MARKETS
    return gw


class TestMetadataCache:
    @pytest.mark.asyncio
    async def test_snapshot_reused_within_ttl(self, gateway: AsyncMock) -> None:
        clock = _Clock()
        cache = MarketMetadataCache(gateway, ttl_seconds=300, clock=clock)

        await cache.get_markets()
        clock.now += 299
        await cache.get_filters("BTC/USDT")

        assert gateway.fetch_markets.await_count == 1
        assert cache.is_fresh()

    @pytest.mark.asyncio
    async def test_snapshot_refreshed_when_stale(self, gateway: AsyncMock) -> None:
        clock = _Clock()
        cache = MarketMetadataCache(gateway, ttl_seconds=300, clock=clock)

        await cache.get_markets()
        clock.now += 300
        assert not cache.is_fresh()
        await cache.get_markets()

        assert gateway.fetch_markets.await_count == 2

    @pytest.mark.asyncio
    async def test_get_filters_unknown_pair(self, gateway: AsyncMock) -> None:
        cache = MarketMetadataCache(gateway)
        with pytest.raises(NotFoundError):
            await cache.get_filters("NOPE/USDT")

    @pytest.mark.asyncio
    async def test_quote_pairs_keeps_active_spot_pairs_in_venue_order(
        self, gateway: AsyncMock
    ) -> None:
        cache = MarketMetadataCache(gateway)
        assert await cache.quote_pairs("usdt") == ["BTC/USDT", "ETH/USDT"]
