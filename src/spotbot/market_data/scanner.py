"""Market scanner -- one scan-decide-execute round over the quote-asset universe.

Each round:
  1. BUDGET: free quote balance * buy_budget_pct (abort round if unavailable)
  2. UNIVERSE: quote pairs minus pairs with an OPEN trade, truncated to the cap
  3. EVALUATE: fixed-size worker pool computes indicators per pair; failures
     are isolated to their pair
  4. EXECUTE: buy candidates sequentially, in universe order, one unit each,
     while the remaining capital covers a unit
  5. SUMMARY: returned to the caller for logging

The evaluation phase is read-only with respect to shared state; remaining
capital only exists inside the sequential execution phase.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import TypeVar

from spotbot.config import SignalSettings, TradingSettings
from spotbot.data.store import TradeStore
from spotbot.exchange.client import ExchangeGateway
from spotbot.exchange.metadata import MarketMetadataCache
from spotbot.logging import get_logger
from spotbot.models import RoundSummary
from spotbot.position.sizing import OrderSizer
from spotbot.signals.engine import compute_snapshot, is_entry_signal
from spotbot.signals.models import IndicatorSnapshot

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class PairEvaluation:
    """Outcome of evaluating one pair. Exactly one of snapshot/error is set."""

    pair: str
    snapshot: IndicatorSnapshot | None = None
    is_candidate: bool = False
    error: Exception | None = None


async def run_bounded(
    items: list[T],
    limit: int,
    handler: Callable[[T], Awaitable[R]],
) -> list[R | None]:
    """Run ``handler`` over ``items`` with at most ``limit`` calls in flight.

    A fixed pool of worker tasks pulls ``(index, item)`` pairs from a queue and
    writes each result into a pre-sized slot list, so the output order matches
    the input order regardless of completion order. Handlers are expected to
    contain their own failures; any exception that escapes is stored in place
    of the result's slot as None after being logged.
    """
    results: list[R | None] = [None] * len(items)
    if not items:
        return results

    queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    async def worker() -> None:
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                results[index] = await handler(item)
            except Exception:
                logger.error("bounded_worker_unhandled_error", item=str(item), exc_info=True)

    workers = [asyncio.create_task(worker()) for _ in range(min(max(1, limit), len(items)))]
    await asyncio.gather(*workers)
    return results


class Scanner:
    """Scans the pair universe and opens positions on entry signals.

    Args:
        settings: Trading settings (quote asset, unit size, caps, windows).
        signal_settings: Indicator lookbacks.
        gateway: Exchange gateway.
        metadata: Shared exchange metadata cache.
        sizer: Order sizer for buys.
        store: Trade store.
        interval: Candle interval evaluated each round (e.g. "1h").
    """

    def __init__(
        self,
        settings: TradingSettings,
        signal_settings: SignalSettings,
        gateway: ExchangeGateway,
        metadata: MarketMetadataCache,
        sizer: OrderSizer,
        store: TradeStore,
        interval: str = "1h",
    ) -> None:
        self._settings = settings
        self._signal_settings = signal_settings
        self._gateway = gateway
        self._metadata = metadata
        self._sizer = sizer
        self._store = store
        self._interval = interval

    async def run_round(self) -> RoundSummary:
        """Execute one full scan round and return its summary. Never raises for per-pair failures."""
        started = time.monotonic()
        asset = self._settings.quote_asset.upper()
        unit = self._settings.unit_notional

        # 1. Budget
        try:
            available = await self._gateway.fetch_balance(asset)
        except Exception as exc:
            logger.warning(
                "scan_round_aborted_balance_unavailable",
                asset=asset,
                operation="fetch_balance",
                error=str(exc),
            )
            return RoundSummary(
                asset=asset,
                asset_available=Decimal("0"),
                capital_for_buys=Decimal("0"),
                capital_remaining=Decimal("0"),
                open_trade_count=await self._count_open_trades(),
                duration_seconds=time.monotonic() - started,
                aborted=True,
            )

        capital = available * self._settings.buy_budget_pct
        logger.info(
            "scan_budget_computed",
            asset=asset,
            available=str(available),
            budget_pct=str(self._settings.buy_budget_pct),
            capital_for_buys=str(capital),
        )

        # 2-3. Universe
        pairs = await self.select_pairs(asset)

        # 4-5. Evaluate
        evaluations = await run_bounded(
            pairs, self._settings.concurrent_requests, self.evaluate_pair
        )
        candidates = [e for e in evaluations if e is not None and e.is_candidate]
        failures = sum(1 for e in evaluations if e is None or e.error is not None)

        # 6. Execute
        remaining, buys = await self._execute_buys(candidates, capital, unit)

        duration = time.monotonic() - started
        summary = RoundSummary(
            asset=asset,
            asset_available=available,
            capital_for_buys=capital,
            capital_remaining=remaining,
            open_trade_count=await self._count_open_trades(),
            pairs_considered=len(pairs),
            candidates=len(candidates),
            failures=failures,
            buys=buys,
            duration_seconds=duration,
        )
        logger.info(
            "scan_round_completed",
            pairs_considered=summary.pairs_considered,
            candidates=summary.candidates,
            failures=summary.failures,
            buys=summary.buys,
            capital_remaining=str(summary.capital_remaining),
            duration_ms=round(duration * 1000),
        )
        return summary

    async def select_pairs(self, asset: str) -> list[str]:
        """Quote-asset universe minus pairs already held, truncated to the per-round cap."""
        try:
            open_pairs = {t.pair for t in await self._store.list_open_trades()}
        except Exception as exc:
            logger.warning("open_trades_unavailable", operation="list_open_trades", error=str(exc))
            open_pairs = set()

        universe = await self._metadata.quote_pairs(asset)
        filtered = [p for p in universe if p not in open_pairs]
        cap = self._settings.max_pairs_per_round
        pairs = filtered[:cap] if cap > 0 else filtered

        logger.debug(
            "scan_universe_selected",
            universe=len(universe),
            excluded_open=len(universe) - len(filtered),
            selected=len(pairs),
        )
        return pairs

    async def evaluate_pair(self, pair: str) -> PairEvaluation:
        """Fetch candles, compute indicators and test the entry rule. Failures are contained."""
        try:
            candles = await self._gateway.fetch_candles(
                pair, self._interval, self._settings.candle_limit
            )
            snapshot = compute_snapshot(pair, candles, self._signal_settings)
        except Exception as exc:
            logger.warning(
                "pair_evaluation_failed",
                pair=pair,
                operation="evaluate",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return PairEvaluation(pair=pair, error=exc)

        is_candidate = is_entry_signal(snapshot)
        if is_candidate:
            logger.info(
                "entry_candidate_found",
                pair=pair,
                last_close=str(snapshot.last_close),
                supertrend=str(snapshot.supertrend),
                sma_low_3=str(snapshot.sma_low_3),
                rsi=str(snapshot.rsi) if snapshot.rsi is not None else None,
            )
        return PairEvaluation(pair=pair, snapshot=snapshot, is_candidate=is_candidate)

    async def _execute_buys(
        self,
        candidates: list[PairEvaluation],
        capital: Decimal,
        unit: Decimal,
    ) -> tuple[Decimal, int]:
        """Sequential buy walk. Capital is decremented by the unit, not the filled notional."""
        remaining = capital
        buys = 0
        for position, candidate in enumerate(candidates):
            if remaining < unit:
                logger.info(
                    "scan_capital_exhausted",
                    remaining=str(remaining),
                    unit=str(unit),
                    skipped_candidates=len(candidates) - position,
                )
                break
            try:
                await self._buy(candidate.pair, unit)
            except Exception as exc:
                logger.warning(
                    "buy_failed",
                    pair=candidate.pair,
                    operation="buy",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            remaining -= unit
            buys += 1
            logger.info(
                "buy_executed",
                pair=candidate.pair,
                capital_remaining=str(remaining),
            )
        return remaining, buys

    async def _buy(self, pair: str, unit: Decimal) -> None:
        quantity, price = await self._sizer.size_buy(pair, unit)
        order = await self._gateway.place_market_buy(pair, quantity)
        entry_price = order.average_price if order.average_price > 0 else price
        filled_qty = order.filled_qty if order.filled_qty > 0 else quantity
        try:
            await self._store.create_open_trade(
                pair=pair,
                order_id=order.order_id,
                entry_price=entry_price,
                quantity=filled_qty,
            )
        except Exception:
            # The venue holds the position but we have no record of it
            logger.error(
                "trade_persist_failed",
                pair=pair,
                order_id=order.order_id,
                quantity=str(filled_qty),
                entry_price=str(entry_price),
                exc_info=True,
            )
            raise

    async def _count_open_trades(self) -> int:
        try:
            return len(await self._store.list_open_trades())
        except Exception as exc:
            logger.warning("open_trade_count_failed", operation="list_open_trades", error=str(exc))
            return 0
