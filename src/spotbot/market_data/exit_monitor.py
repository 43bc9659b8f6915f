"""Exit monitor -- closes open positions on streamed, closed klines.

One kline subscription and one consumer task per monitored pair. The
gateway's producer pushes KlineEvents into the subscription's bounded
queue; the consumer ignores in-progress bars and, for each closed bar,
re-fetches a short candle window and tests the exit rule.

Per-pair state machine:
    SUBSCRIBED --(closed bar, rule false)--> SUBSCRIBED
    SUBSCRIBED --(closed bar, error)-------> SUBSCRIBED
    SUBSCRIBED --(closed bar, rule true, sell ok)--> TERMINATED

Monitoring is seeded from the store's OPEN trades by start(). Trades opened
later are only picked up by watch() / reseed().
"""

from __future__ import annotations

import asyncio

from spotbot.config import MonitorSettings, SignalSettings, TradingSettings
from spotbot.data.store import TradeStore
from spotbot.exchange.client import ExchangeGateway
from spotbot.exchange.stream import KlineSubscription
from spotbot.logging import get_logger
from spotbot.position.sizing import OrderSizer
from spotbot.signals.engine import compute_snapshot, is_exit_signal

logger = get_logger(__name__)


class ExitMonitor:
    """Per-position exit monitoring driven by kline streams.

    Args:
        gateway: Exchange gateway providing candles, sells and kline subscriptions.
        store: Trade store.
        sizer: Order sizer for sell quantities.
        trading_settings: Provides exit_candle_limit.
        signal_settings: Indicator lookbacks.
        monitor_settings: Queue size per subscription.
        interval: Kline interval to monitor.
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        store: TradeStore,
        sizer: OrderSizer,
        trading_settings: TradingSettings,
        signal_settings: SignalSettings,
        monitor_settings: MonitorSettings,
        interval: str = "1h",
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._sizer = sizer
        self._trading_settings = trading_settings
        self._signal_settings = signal_settings
        self._monitor_settings = monitor_settings
        self._interval = interval
        self._subscriptions: dict[str, KlineSubscription] = {}
        self._consumers: dict[str, asyncio.Task] = {}  # type: ignore[type-arg]

    @property
    def monitored_pairs(self) -> list[str]:
        return sorted(self._consumers)

    async def start(self) -> None:
        """Subscribe to every pair with an OPEN trade."""
        try:
            trades = await self._store.list_open_trades()
        except Exception as exc:
            logger.warning("exit_monitor_seed_failed", operation="list_open_trades", error=str(exc))
            return
        for pair in dict.fromkeys(t.pair for t in trades):
            self.watch(pair)
        logger.info("exit_monitor_started", pairs=len(self._consumers))

    async def reseed(self) -> list[str]:
        """Subscribe to OPEN trades that are not monitored yet. Returns the newly watched pairs."""
        trades = await self._store.list_open_trades()
        added = [pair for pair in dict.fromkeys(t.pair for t in trades) if self.watch(pair)]
        if added:
            logger.info("exit_monitor_reseeded", added=added)
        return added

    def watch(self, pair: str) -> bool:
        """Start monitoring a pair. Returns False if it is already monitored."""
        if pair in self._consumers:
            return False
        subscription = self._gateway.subscribe_klines(
            pair, self._interval, self._monitor_settings.queue_size
        )
        self._subscriptions[pair] = subscription
        self._consumers[pair] = asyncio.create_task(
            self._consume(pair, subscription), name=f"exit-monitor:{pair}"
        )
        logger.info("exit_monitor_watching", pair=pair, interval=self._interval)
        return True

    async def stop(self) -> None:
        """Cancel every consumer and close every subscription."""
        consumers = list(self._consumers.values())
        for task in consumers:
            task.cancel()
        for task in consumers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._consumers.clear()
        for pair in list(self._subscriptions):
            await self._unsubscribe(pair)
        logger.info("exit_monitor_stopped")

    async def _consume(self, pair: str, subscription: KlineSubscription) -> None:
        while True:
            event = await subscription.get()
            if not event.is_closed:
                continue
            try:
                terminated = await self.evaluate_bar(pair)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "exit_evaluation_failed",
                    pair=pair,
                    operation="exit_check",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            if terminated:
                self._consumers.pop(pair, None)
                await self._unsubscribe(pair)
                logger.info("exit_monitor_terminated", pair=pair)
                return

    async def evaluate_bar(self, pair: str) -> bool:
        """Test the exit rule for a pair on a closed bar.

        Returns:
            True when monitoring for the pair should end (position closed,
            or no open trade left to close).

        Raises:
            Any gateway/sizing error before the sell is filled; the caller
            keeps the subscription alive in that case.
        """
        candles = await self._gateway.fetch_candles(
            pair, self._interval, self._trading_settings.exit_candle_limit
        )
        snapshot = compute_snapshot(pair, candles, self._signal_settings)
        if not is_exit_signal(snapshot):
            logger.debug(
                "exit_rule_not_met",
                pair=pair,
                last_close=str(snapshot.last_close),
                sma_high_5=str(snapshot.sma_high_5),
            )
            return False

        trade = await self._store.find_open_trade(pair)
        if trade is None:
            logger.info("exit_signal_without_open_trade", pair=pair)
            return True

        quantity = await self._sizer.size_sell(pair, trade.quantity)
        order = await self._gateway.place_market_sell(pair, quantity)

        try:
            await self._store.close_trade(trade.id, exit_price=snapshot.last_close)
        except Exception:
            # Already sold: do not retry the sell on the next bar
            logger.error(
                "trade_close_persist_failed",
                pair=pair,
                trade_id=trade.id,
                order_id=order.order_id,
                exit_price=str(snapshot.last_close),
                exc_info=True,
            )
        logger.info(
            "exit_executed",
            pair=pair,
            trade_id=trade.id,
            order_id=order.order_id,
            quantity=str(quantity),
            exit_price=str(snapshot.last_close),
        )
        return True

    async def _unsubscribe(self, pair: str) -> None:
        self._subscriptions.pop(pair, None)
        try:
            await self._gateway.unsubscribe(pair, self._interval)
        except Exception as exc:
            logger.warning("kline_unsubscribe_failed", pair=pair, error=str(exc))
