"""Kline stream subscription handle and closed-bar detection.

A KlineSubscription decouples network I/O from indicator work: the gateway's
producer task publishes KlineEvents into a bounded per-pair queue, and the
exit monitor's consumer task drains it. Publishing never blocks; when the
queue is full an in-progress update is dropped first, so closed bars reach
the consumer even when it falls behind.

Streams built on ccxt.pro watch_ohlcv carry no "bar closed" flag, so
BarTracker infers it: a bar is closed once a bar with a later open time
arrives, and the final state of the earlier bar is emitted with
is_closed=True before the new bar's first update.
"""

import asyncio

from spotbot.logging import get_logger
from spotbot.models import Candle, KlineEvent

logger = get_logger(__name__)


class BarTracker:
    """Turns a sequence of OHLCV updates into KlineEvents with a closed flag."""

    def __init__(self, pair: str, interval: str) -> None:
        self._pair = pair
        self._interval = interval
        self._current: Candle | None = None

    def feed(self, candles: list[Candle]) -> list[KlineEvent]:
        """Consume updates (oldest first) and return the events they produce."""
        events: list[KlineEvent] = []
        for candle in sorted(candles, key=lambda c: c.timestamp_ms):
            current = self._current
            if current is not None and candle.timestamp_ms < current.timestamp_ms:
                # Late update for a bar we already closed
                continue
            if current is not None and candle.timestamp_ms > current.timestamp_ms:
                events.append(self._event(current, is_closed=True))
            self._current = candle
            events.append(self._event(candle, is_closed=False))
        return events

    def _event(self, candle: Candle, is_closed: bool) -> KlineEvent:
        return KlineEvent(
            pair=self._pair,
            interval=self._interval,
            is_closed=is_closed,
            candle=candle,
        )


class KlineSubscription:
    """Cancellable handle for one (pair, interval) kline stream.

    Args:
        pair: Subscribed pair symbol.
        interval: Kline interval (e.g. "1h").
        queue_size: Maximum buffered events before the oldest is dropped.
    """

    def __init__(self, pair: str, interval: str, queue_size: int = 16) -> None:
        self.pair = pair
        self.interval = interval
        self._queue: asyncio.Queue[KlineEvent] = asyncio.Queue(maxsize=max(1, queue_size))
        self._producer: asyncio.Task | None = None  # type: ignore[type-arg]
        self._closed = False
        self.dropped = 0

    @property
    def key(self) -> str:
        return f"{self.pair}@{self.interval}"

    @property
    def closed(self) -> bool:
        return self._closed

    def attach_producer(self, task: asyncio.Task) -> None:  # type: ignore[type-arg]
        """Bind the task feeding this subscription so close() can cancel it."""
        self._producer = task

    def publish(self, event: KlineEvent) -> None:
        """Enqueue an event without blocking.

        When the queue is full the oldest in-progress update is evicted. Closed
        bars are only dropped when nothing but closed bars is queued; an
        incoming in-progress update is discarded instead in that case.
        """
        if self._closed:
            return
        if self._queue.full():
            pending = [self._queue.get_nowait() for _ in range(self._queue.qsize())]
            victim = next((i for i, e in enumerate(pending) if not e.is_closed), None)
            if victim is None and not event.is_closed:
                for queued in pending:
                    self._queue.put_nowait(queued)
                self.dropped += 1
                return
            del pending[victim if victim is not None else 0]
            self.dropped += 1
            for queued in pending:
                self._queue.put_nowait(queued)
        self._queue.put_nowait(event)

    async def get(self) -> KlineEvent:
        """Wait for the next event."""
        return await self._queue.get()

    async def close(self) -> None:
        """Stop the producer and refuse further events. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._producer is not None:
            self._producer.cancel()
            try:
                await self._producer
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("kline_producer_error_on_close", subscription=self.key, exc_info=True)
            self._producer = None
        logger.info("kline_subscription_closed", subscription=self.key, dropped=self.dropped)
