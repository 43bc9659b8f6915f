"""Tests for closed-bar detection and the bounded kline subscription queue."""

import asyncio
from decimal import Decimal

import pytest

from conftest import make_candle
from spotbot.exchange.stream import BarTracker, KlineSubscription
from spotbot.models import KlineEvent

HOUR = 3_600_000


def _event(ts: int, is_closed: bool = False) -> KlineEvent:
    return KlineEvent(
        pair="ETH/USDT", interval="1h", is_closed=is_closed, candle=make_candle(ts, "100")
    )


class TestBarTracker:
    def test_updates_to_same_bar_are_never_closed(self) -> None:
        tracker = BarTracker("ETH/USDT", "1h")
        events = tracker.feed([make_candle(0, "100")])
        events += tracker.feed([make_candle(0, "101")])
        events += tracker.feed([make_candle(0, "102")])
        assert [e.is_closed for e in events] == [False, False, False]

    def test_new_bar_closes_previous_with_its_final_state(self) -> None:
        tracker = BarTracker("ETH/USDT", "1h")
        tracker.feed([make_candle(0, "100")])
        tracker.feed([make_candle(0, "105")])
        events = tracker.feed([make_candle(HOUR, "106")])

        assert len(events) == 2
        closed, opened = events
        assert closed.is_closed is True
        assert closed.candle.timestamp_ms == 0
        assert closed.candle.close == Decimal("105")
        assert opened.is_closed is False
        assert opened.candle.timestamp_ms == HOUR

    def test_batch_spanning_a_boundary(self) -> None:
        tracker = BarTracker("ETH/USDT", "1h")
        events = tracker.feed([make_candle(HOUR, "101"), make_candle(0, "100")])
        assert [(e.candle.timestamp_ms, e.is_closed) for e in events] == [
            (0, False),
            (0, True),
            (HOUR, False),
        ]

    def test_late_update_for_older_bar_is_ignored(self) -> None:
        tracker = BarTracker("ETH/USDT", "1h")
        tracker.feed([make_candle(HOUR, "101")])
        assert tracker.feed([make_candle(0, "100")]) == []

    def test_one_closed_event_per_bar(self) -> None:
        tracker = BarTracker("ETH/USDT", "1h")
        events = []
        for ts in (0, 0, HOUR, HOUR, HOUR, 2 * HOUR):
            events += tracker.feed([make_candle(ts, "100")])
        closed = [e.candle.timestamp_ms for e in events if e.is_closed]
        assert closed == [0, HOUR]


class TestKlineSubscription:
    def test_key(self) -> None:
        assert KlineSubscription("ETH/USDT", "1h").key == "ETH/USDT@1h"

    @pytest.mark.asyncio
    async def test_publish_and_get_in_order(self) -> None:
        sub = KlineSubscription("ETH/USDT", "1h", queue_size=4)
        sub.publish(_event(0))
        sub.publish(_event(HOUR, is_closed=True))
        assert (await sub.get()).candle.timestamp_ms == 0
        assert (await sub.get()).is_closed is True

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self) -> None:
        sub = KlineSubscription("ETH/USDT", "1h", queue_size=2)
        for ts in (0, 1, 2):
            sub.publish(_event(ts))
        assert sub.dropped == 1
        assert (await sub.get()).candle.timestamp_ms == 1
        assert (await sub.get()).candle.timestamp_ms == 2

    @pytest.mark.asyncio
    async def test_full_queue_keeps_closed_bar_over_updates(self) -> None:
        sub = KlineSubscription("ETH/USDT", "1h", queue_size=2)
        sub.publish(_event(0, is_closed=True))
        sub.publish(_event(HOUR))
        sub.publish(_event(HOUR))

        drained = [await sub.get(), await sub.get()]
        assert [(e.candle.timestamp_ms, e.is_closed) for e in drained] == [
            (0, True),
            (HOUR, False),
        ]
        assert sub.dropped == 1

    @pytest.mark.asyncio
    async def test_update_discarded_when_only_closed_bars_queued(self) -> None:
        sub = KlineSubscription("ETH/USDT", "1h", queue_size=2)
        sub.publish(_event(0, is_closed=True))
        sub.publish(_event(HOUR, is_closed=True))
        sub.publish(_event(2 * HOUR))

        drained = [await sub.get(), await sub.get()]
        assert all(e.is_closed for e in drained)
        assert [e.candle.timestamp_ms for e in drained] == [0, HOUR]
        assert sub.dropped == 1

    @pytest.mark.asyncio
    async def test_closed_bar_evicts_oldest_closed_when_no_updates_queued(self) -> None:
        sub = KlineSubscription("ETH/USDT", "1h", queue_size=2)
        for ts in (0, HOUR, 2 * HOUR):
            sub.publish(_event(ts, is_closed=True))

        drained = [await sub.get(), await sub.get()]
        assert [e.candle.timestamp_ms for e in drained] == [HOUR, 2 * HOUR]

    @pytest.mark.asyncio
    async def test_close_cancels_producer_and_is_idempotent(self) -> None:
        sub = KlineSubscription("ETH/USDT", "1h")

        async def producer() -> None:
            await asyncio.sleep(3600)

        task = asyncio.create_task(producer())
        sub.attach_producer(task)
        await sub.close()
        await sub.close()

        assert sub.closed
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_publish_after_close_is_dropped_silently(self) -> None:
        sub = KlineSubscription("ETH/USDT", "1h")
        await sub.close()
        sub.publish(_event(0))
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(sub.get(), timeout=0.01)
