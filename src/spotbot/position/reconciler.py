"""Boot-time reconciliation between the trade store and the venue's open orders.

On restart the store may hold OPEN trades that no longer match the venue
(closed by hand in the venue UI, expired, or filled while the bot was down).
This module resolves that drift once, before the exit monitor starts.

Scenarios handled:
1. Store OPEN trade, matching venue open order -> no action
2. Store OPEN trade, no matching venue order   -> CLOSED_MANUALLY (final, no P&L)
3. Venue open order, no store record          -> warning only; no record is
   fabricated because the entry price is unknown

Reconciliation is best effort: if the venue query fails the boot continues
without any transition.
"""

from spotbot.data.store import TradeStore
from spotbot.exchange.client import ExchangeGateway
from spotbot.logging import get_logger
from spotbot.models import ReconciliationReport

logger = get_logger(__name__)


class Reconciler:
    """Aligns local OPEN trades with the venue's live open-order list.

    Args:
        gateway: Exchange gateway for fetch_open_orders().
        store: Trade store.
    """

    def __init__(self, gateway: ExchangeGateway, store: TradeStore) -> None:
        self._gateway = gateway
        self._store = store

    async def reconcile(self) -> ReconciliationReport:
        """Run one reconciliation pass. Idempotent when nothing changes in between."""
        report = ReconciliationReport()

        try:
            venue_orders = await self._gateway.fetch_open_orders()
        except Exception as exc:
            logger.warning(
                "reconciliation_skipped",
                operation="fetch_open_orders",
                error=str(exc),
            )
            report.skipped = True
            return report

        local_open = await self._store.list_open_trades()
        venue_keys = {order.key for order in venue_orders}
        local_keys = {trade.key for trade in local_open}

        logger.info(
            "reconciliation_started",
            local_open=len(local_open),
            venue_open=len(venue_orders),
        )

        for trade in local_open:
            if trade.key in venue_keys:
                continue
            closed = await self._store.mark_closed_manually(trade.pair, trade.order_id)
            if closed is not None:
                report.closed_manually.append(trade.key)
                logger.info(
                    "trade_marked_closed_manually",
                    pair=trade.pair,
                    order_id=trade.order_id,
                    trade_id=trade.id,
                )

        for order in venue_orders:
            if order.key in local_keys:
                continue
            report.untracked_orders.append(order.key)
            logger.warning(
                "untracked_venue_order",
                pair=order.pair,
                order_id=order.order_id,
            )

        logger.info(
            "reconciliation_completed",
            closed_manually=len(report.closed_manually),
            untracked_orders=len(report.untracked_orders),
        )
        return report
