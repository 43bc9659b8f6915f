"""Exchange gateway layer -- Binance spot integration via ccxt."""

from spotbot.exchange.binance_client import BinanceGateway
from spotbot.exchange.client import ExchangeGateway
from spotbot.exchange.metadata import MarketMetadataCache
from spotbot.exchange.stream import BarTracker, KlineSubscription
from spotbot.exchange.types import ExchangeFilters, MarketInfo, round_to_step

__all__ = [
    "BarTracker",
    "BinanceGateway",
    "ExchangeFilters",
    "ExchangeGateway",
    "KlineSubscription",
    "MarketInfo",
    "MarketMetadataCache",
    "round_to_step",
]
