"""Binance spot gateway implementation via ccxt / ccxt.pro.

Wraps a ccxt.pro binance instance (REST + websocket in one client) with
market loading, per-call timeouts, translation of ccxt errors into the
bot's exception hierarchy, and kline stream subscriptions.
"""

import asyncio
import time
from collections.abc import Awaitable
from decimal import Decimal
from typing import Any, TypeVar

import ccxt
import ccxt.pro as ccxt_pro

from spotbot.config import ExchangeSettings
from spotbot.exceptions import (
    AuthError,
    InsufficientFundsError,
    NotFoundError,
    RejectedByVenueError,
    TransientRemoteError,
)
from spotbot.exchange.client import ExchangeGateway
from spotbot.exchange.stream import BarTracker, KlineSubscription
from spotbot.exchange.types import ExchangeFilters, MarketInfo, to_decimal
from spotbot.logging import get_logger
from spotbot.models import Candle, OpenOrder, OrderResult, OrderSide

logger = get_logger(__name__)

T = TypeVar("T")


def _raw_filter(market: dict, filter_type: str) -> dict:
    for entry in market.get("info", {}).get("filters", []) or []:
        if entry.get("filterType") == filter_type:
            return entry
    return {}


def parse_filters(symbol: str, market: dict) -> ExchangeFilters:
    """Extract precision filters from a ccxt market entry.

    Prefers Binance's raw LOT_SIZE / PRICE_FILTER / (MIN_)NOTIONAL filters and
    falls back to ccxt's unified precision/limits fields when absent.
    """
    lot_size = _raw_filter(market, "LOT_SIZE")
    price_filter = _raw_filter(market, "PRICE_FILTER")
    notional = _raw_filter(market, "MIN_NOTIONAL") or _raw_filter(market, "NOTIONAL")

    precision = market.get("precision", {}) or {}
    cost_limits = (market.get("limits", {}) or {}).get("cost", {}) or {}

    step_size = to_decimal(lot_size.get("stepSize"))
    if step_size is None:
        step_size = to_decimal(precision.get("amount"))
    tick_size = to_decimal(price_filter.get("tickSize"))
    if tick_size is None:
        tick_size = to_decimal(precision.get("price"))
    min_notional = to_decimal(notional.get("minNotional"))
    if min_notional is None:
        min_notional = to_decimal(cost_limits.get("min"))

    return ExchangeFilters(
        symbol=symbol,
        step_size=step_size,
        tick_size=tick_size,
        min_notional=min_notional,
    )


class BinanceGateway(ExchangeGateway):
    """Concrete Binance spot gateway using ccxt.pro async.

    Args:
        settings: Exchange settings (credentials, testnet, timeout).
        stream_reconnect_delay: Seconds to wait before re-watching a failed stream.
        exchange: Pre-built ccxt exchange instance (tests inject a mock).
    """

    def __init__(
        self,
        settings: ExchangeSettings,
        stream_reconnect_delay: float = 5.0,
        exchange: Any | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = settings.request_timeout
        self._reconnect_delay = stream_reconnect_delay

        if exchange is None:
            config: dict = {
                "apiKey": settings.api_key.get_secret_value().strip(),
                "secret": settings.api_secret.get_secret_value().strip(),
                "enableRateLimit": True,
                "options": {
                    "defaultType": "spot",
                    "adjustForTimeDifference": True,
                    "recvWindow": 60000,
                    "warnOnFetchOpenOrdersWithoutSymbol": False,
                },
            }
            exchange = ccxt_pro.binance(config)
            if settings.testnet:
                exchange.set_sandbox_mode(True)

        self._exchange = exchange
        self._subscriptions: dict[str, KlineSubscription] = {}

        logger.info(
            "binance_gateway_configured",
            testnet=settings.testnet,
            timeout=self._timeout,
        )

    @property
    def exchange(self) -> Any:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def connect(self) -> None:
        """Initialize connection by loading markets."""
        logger.info("connecting_to_binance", testnet=self._settings.testnet)
        markets = await self._call("load_markets", self._exchange.load_markets())
        logger.info("binance_connected", market_count=len(markets))

    async def close(self) -> None:
        """Close every kline subscription, then the ccxt client. CRITICAL: avoids resource leaks."""
        for key in list(self._subscriptions):
            subscription = self._subscriptions.pop(key)
            await subscription.close()
        logger.info("closing_binance_connection")
        await self._exchange.close()
        logger.info("binance_connection_closed")

    async def check_connectivity(self) -> None:
        server_time = await self._call("fetch_time", self._exchange.fetch_time())
        logger.info("binance_reachable", server_time=server_time)

    # ──────────────────────────────────────────────
    # REST operations
    # ──────────────────────────────────────────────

    async def fetch_balance(self, asset: str) -> Decimal:
        self._require_credentials()
        balance = await self._call("fetch_balance", self._exchange.fetch_balance())
        entry = balance.get(asset.upper()) or {}
        free = entry.get("free")
        return Decimal(str(free)) if free is not None else Decimal("0")

    async def fetch_candles(self, pair: str, interval: str, limit: int) -> list[Candle]:
        rows = await self._call(
            f"fetch_ohlcv {pair} {interval}",
            self._exchange.fetch_ohlcv(pair, timeframe=interval, limit=limit),
        )
        return [Candle.from_ohlcv(row) for row in rows]

    async def fetch_price(self, pair: str) -> Decimal:
        ticker = await self._call(f"fetch_ticker {pair}", self._exchange.fetch_ticker(pair))
        last = ticker.get("last")
        if last is None:
            raise TransientRemoteError(f"No last price available for {pair}")
        return Decimal(str(last))

    async def fetch_markets(self) -> dict[str, MarketInfo]:
        markets = await self._call(
            "load_markets", self._exchange.load_markets(reload=True)
        )
        return {
            symbol: MarketInfo(
                symbol=symbol,
                base=market.get("base", ""),
                quote=market.get("quote", ""),
                active=bool(market.get("active", True)),
                spot=bool(market.get("spot", False)),
                filters=parse_filters(symbol, market),
            )
            for symbol, market in markets.items()
        }

    async def place_market_buy(self, pair: str, quantity: Decimal) -> OrderResult:
        return await self._place_market_order(pair, OrderSide.BUY, quantity)

    async def place_market_sell(self, pair: str, quantity: Decimal) -> OrderResult:
        return await self._place_market_order(pair, OrderSide.SELL, quantity)

    async def fetch_open_orders(self) -> list[OpenOrder]:
        self._require_credentials()
        orders = await self._call("fetch_open_orders", self._exchange.fetch_open_orders())
        return [
            OpenOrder(pair=order["symbol"], order_id=str(order["id"]))
            for order in orders
        ]

    async def _place_market_order(
        self, pair: str, side: OrderSide, quantity: Decimal
    ) -> OrderResult:
        self._require_credentials()
        logger.info(
            "creating_order",
            symbol=pair,
            order_type="market",
            side=side.value,
            amount=str(quantity),
        )
        result = await self._call(
            f"create_order {side.value} {pair}",
            self._exchange.create_order(pair, "market", side.value, float(quantity)),
            is_order=True,
        )

        # All values through Decimal(str()) to avoid float artifacts
        filled_raw = result.get("filled")
        filled_qty = Decimal(str(filled_raw)) if filled_raw else quantity
        average_raw = result.get("average") or result.get("price")
        average_price = Decimal(str(average_raw)) if average_raw else Decimal("0")
        timestamp = result.get("timestamp")

        order = OrderResult(
            order_id=str(result.get("id", "")),
            symbol=pair,
            side=side,
            filled_qty=filled_qty,
            average_price=average_price,
            timestamp=float(timestamp) / 1000.0 if timestamp else time.time(),
        )
        logger.info(
            "order_filled",
            order_id=order.order_id,
            symbol=pair,
            side=side.value,
            quantity=str(order.filled_qty),
            average_price=str(order.average_price),
        )
        return order

    # ──────────────────────────────────────────────
    # Streaming
    # ──────────────────────────────────────────────

    def subscribe_klines(
        self, pair: str, interval: str, queue_size: int = 16
    ) -> KlineSubscription:
        subscription = KlineSubscription(pair, interval, queue_size)
        existing = self._subscriptions.get(subscription.key)
        if existing is not None and not existing.closed:
            return existing
        task = asyncio.create_task(
            self._stream_klines(subscription), name=f"klines:{subscription.key}"
        )
        subscription.attach_producer(task)
        self._subscriptions[subscription.key] = subscription
        logger.info("kline_subscription_started", subscription=subscription.key)
        return subscription

    async def unsubscribe(self, pair: str, interval: str) -> None:
        key = f"{pair}@{interval}"
        subscription = self._subscriptions.pop(key, None)
        if subscription is None:
            return
        await subscription.close()
        if self._exchange.has.get("unWatchOHLCV"):
            try:
                await asyncio.wait_for(
                    self._exchange.un_watch_ohlcv(pair, interval), timeout=self._timeout
                )
            except Exception:
                logger.debug("un_watch_ohlcv_failed", subscription=key, exc_info=True)

    async def _stream_klines(self, subscription: KlineSubscription) -> None:
        """Producer loop: watch OHLCV updates and publish KlineEvents."""
        tracker = BarTracker(subscription.pair, subscription.interval)
        while not subscription.closed:
            try:
                rows = await self._exchange.watch_ohlcv(
                    subscription.pair, subscription.interval
                )
                for event in tracker.feed([Candle.from_ohlcv(row) for row in rows]):
                    subscription.publish(event)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "kline_stream_error",
                    subscription=subscription.key,
                    error=str(exc),
                    retry_in=self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)

    # ──────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────

    def _require_credentials(self) -> None:
        if not self._settings.has_credentials:
            raise AuthError(
                "BINANCE_API_KEY/BINANCE_API_SECRET are not configured"
            )

    async def _call(
        self, label: str, awaitable: Awaitable[T], is_order: bool = False
    ) -> T:
        """Await a ccxt call under the request timeout, translating errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise TransientRemoteError(f"Timeout in {label} ({self._timeout}s)") from exc
        except ccxt.AuthenticationError as exc:
            raise AuthError(f"{label}: {exc}") from exc
        except ccxt.BadSymbol as exc:
            raise NotFoundError(f"{label}: {exc}") from exc
        except ccxt.InsufficientFunds as exc:
            raise InsufficientFundsError(f"{label}: {exc}") from exc
        except ccxt.InvalidOrder as exc:
            raise RejectedByVenueError(f"{label}: {exc}") from exc
        except ccxt.NetworkError as exc:
            raise TransientRemoteError(f"{label}: {exc}") from exc
        except ccxt.ExchangeError as exc:
            if is_order:
                raise RejectedByVenueError(f"{label}: {exc}") from exc
            raise TransientRemoteError(f"{label}: {exc}") from exc
