"""Main bot orchestrator -- boot sequence, scheduling and the non-overlapping scan round.

Boot sequence:
  1. RECONCILE: align store OPEN trades with venue open orders (best effort)
  2. MONITOR: subscribe exit monitoring for every OPEN trade
  3. SCHEDULE: register the cron-triggered scan round
  4. RUN ON START: optionally run one scan round immediately

The round lock is the busy flag: a trigger that finds a round already in
progress is skipped with a warning, never queued and never cancelling the
running round.
"""

from __future__ import annotations

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from spotbot.config import AppSettings
from spotbot.logging import get_logger
from spotbot.market_data.exit_monitor import ExitMonitor
from spotbot.market_data.scanner import Scanner
from spotbot.models import RoundSummary
from spotbot.position.reconciler import Reconciler

logger = get_logger(__name__)

_SCAN_JOB_ID = "scan_round"


class Orchestrator:
    """Wires reconciliation, exit monitoring and scheduled scan rounds.

    Args:
        settings: Application-wide settings.
        scanner: Scan round executor.
        exit_monitor: Stream-driven exit monitor.
        reconciler: Boot-time reconciler.
        scheduler: APScheduler instance (a new AsyncIOScheduler when None).
    """

    def __init__(
        self,
        settings: AppSettings,
        scanner: Scanner,
        exit_monitor: ExitMonitor,
        reconciler: Reconciler,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._settings = settings
        self._scanner = scanner
        self._exit_monitor = exit_monitor
        self._reconciler = reconciler
        self._scheduler = scheduler or AsyncIOScheduler()
        self._round_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._last_summary: RoundSummary | None = None

    @property
    def is_busy(self) -> bool:
        return self._round_lock.locked()

    @property
    def last_summary(self) -> RoundSummary | None:
        return self._last_summary

    async def start(self) -> None:
        """Boot, then block until stop() is called."""
        logger.info(
            "orchestrator_starting",
            quote_asset=self._settings.trading.quote_asset,
            interval=self._settings.exchange.default_interval,
        )
        try:
            await self.boot()
            await self._stop_event.wait()
        finally:
            await self._shutdown()
            logger.info("orchestrator_stopped")

    async def boot(self) -> None:
        """Reconcile, start monitoring, schedule rounds and optionally run one now."""
        await self._reconciler.reconcile()
        await self._exit_monitor.start()

        scheduler_settings = self._settings.scheduler
        if scheduler_settings.enabled:
            self._schedule(scheduler_settings.cron)
        else:
            logger.info("scheduler_disabled")

        if scheduler_settings.run_on_start:
            await self.run_round(trigger="startup")

    async def stop(self) -> None:
        """Signal start() to return. Open positions are left in place."""
        logger.info("orchestrator_stopping_gracefully")
        self._stop_event.set()

    async def run_round(self, trigger: str = "schedule") -> RoundSummary | None:
        """Run one scan round unless another one is still in progress.

        Returns:
            The round summary, or None when skipped or failed.
        """
        if self._round_lock.locked():
            logger.warning("scan_round_skipped_busy", trigger=trigger)
            return None

        async with self._round_lock:
            logger.info("scan_round_started", trigger=trigger)
            try:
                summary = await self._scanner.run_round()
            except Exception as e:
                logger.error("scan_round_error", trigger=trigger, error=str(e), exc_info=True)
                return None

            self._last_summary = summary
            logger.info(
                "scan_round_finished",
                trigger=trigger,
                asset=summary.asset,
                asset_available=f"{summary.asset_available:.2f}",
                capital_for_buys=f"{summary.capital_for_buys:.2f}",
                capital_remaining=f"{summary.capital_remaining:.2f}",
                open_trades=summary.open_trade_count,
                aborted=summary.aborted,
            )

            if self._settings.monitor.reseed_after_round:
                try:
                    await self._exit_monitor.reseed()
                except Exception as e:
                    logger.warning("exit_monitor_reseed_failed", error=str(e))
            return summary

    def _schedule(self, expression: str) -> bool:
        try:
            trigger = CronTrigger.from_crontab(expression)
        except ValueError as e:
            logger.error("invalid_cron_expression", cron=expression, error=str(e))
            return False

        self._scheduler.add_job(
            self.run_round,
            trigger=trigger,
            id=_SCAN_JOB_ID,
            name="Scan round",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("scheduler_enabled", cron=expression)
        return True

    async def _shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        await self._exit_monitor.stop()
