"""Typed SQLite read/write abstraction for trade records.

Provides TradeStore with the lifecycle operations the scanner, exit monitor
and reconciler need. All SQL is isolated behind this interface.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
Only OPEN rows are ever updated; every transition is guarded by
``WHERE status = 'OPEN'`` so terminal rows are immutable.
"""

import time
from decimal import Decimal

import aiosqlite

from spotbot.data.database import TradeDatabase
from spotbot.logging import get_logger
from spotbot.models import Trade, TradeStatus

logger = get_logger(__name__)

_COLUMNS = (
    "id, pair, order_id, entry_price, quantity, status, "
    "exit_price, profit_loss, created_at, updated_at"
)


def _optional_decimal(raw: str | None) -> Decimal | None:
    return Decimal(raw) if raw is not None else None


def _row_to_trade(row: aiosqlite.Row) -> Trade:
    return Trade(
        id=row["id"],
        pair=row["pair"],
        order_id=row["order_id"],
        entry_price=Decimal(row["entry_price"]),
        quantity=Decimal(row["quantity"]),
        status=TradeStatus(row["status"]),
        exit_price=_optional_decimal(row["exit_price"]),
        profit_loss=_optional_decimal(row["profit_loss"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class TradeStore:
    """Async SQLite store for trade lifecycle records.

    Usage:
        async with TradeDatabase("data/trades.db") as database:
            store = TradeStore(database)
            trade = await store.create_open_trade("BTC/USDT", "123", price, qty)
    """

    def __init__(self, database: TradeDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def create_open_trade(
        self,
        pair: str,
        order_id: str,
        entry_price: Decimal,
        quantity: Decimal,
    ) -> Trade:
        """Insert a new OPEN trade. order_id must be unique."""
        now = time.time()
        cursor = await self._database.db.execute(
            "INSERT INTO trades "
            "(pair, order_id, entry_price, quantity, status, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                pair,
                str(order_id),
                str(entry_price),
                str(quantity),
                TradeStatus.OPEN.value,
                now,
                now,
            ),
        )
        await self._database.db.commit()
        trade_id = cursor.lastrowid
        logger.info(
            "trade_opened",
            trade_id=trade_id,
            pair=pair,
            order_id=str(order_id),
            entry_price=str(entry_price),
            quantity=str(quantity),
        )
        return Trade(
            id=trade_id,  # type: ignore[arg-type]
            pair=pair,
            order_id=str(order_id),
            entry_price=entry_price,
            quantity=quantity,
            created_at=now,
            updated_at=now,
        )

    async def close_trade(self, trade_id: int, exit_price: Decimal) -> Trade | None:
        """Transition an OPEN trade to CLOSED, recording exit price and P&L.

        profit_loss = (exit_price - entry_price) * quantity

        Returns:
            The updated trade, or None when no OPEN trade has that id.
        """
        trade = await self.get_trade(trade_id)
        if trade is None or trade.status != TradeStatus.OPEN:
            return None

        profit_loss = (exit_price - trade.entry_price) * trade.quantity
        now = time.time()
        cursor = await self._database.db.execute(
            "UPDATE trades SET status = ?, exit_price = ?, profit_loss = ?, updated_at = ? "
            "WHERE id = ? AND status = ?",
            (
                TradeStatus.CLOSED.value,
                str(exit_price),
                str(profit_loss),
                now,
                trade_id,
                TradeStatus.OPEN.value,
            ),
        )
        await self._database.db.commit()
        if cursor.rowcount == 0:
            return None

        trade.status = TradeStatus.CLOSED
        trade.exit_price = exit_price
        trade.profit_loss = profit_loss
        trade.updated_at = now
        logger.info(
            "trade_closed",
            trade_id=trade_id,
            pair=trade.pair,
            exit_price=str(exit_price),
            profit_loss=str(profit_loss),
        )
        return trade

    async def mark_closed_manually(self, pair: str, order_id: str) -> Trade | None:
        """Transition the OPEN trade for (pair, order_id) to CLOSED_MANUALLY.

        No exit price or P&L is recorded.

        Returns:
            The updated trade, or None when no matching OPEN trade exists.
        """
        cursor = await self._database.db.execute(
            f"SELECT {_COLUMNS} FROM trades WHERE pair = ? AND order_id = ? AND status = ?",
            (pair, str(order_id), TradeStatus.OPEN.value),
        )
        row = await cursor.fetchone()
        if row is None:
            return None

        trade = _row_to_trade(row)
        now = time.time()
        await self._database.db.execute(
            "UPDATE trades SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (TradeStatus.CLOSED_MANUALLY.value, now, trade.id, TradeStatus.OPEN.value),
        )
        await self._database.db.commit()

        trade.status = TradeStatus.CLOSED_MANUALLY
        trade.updated_at = now
        logger.info("trade_closed_manually", trade_id=trade.id, pair=pair, order_id=str(order_id))
        return trade

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get_trade(self, trade_id: int) -> Trade | None:
        cursor = await self._database.db.execute(
            f"SELECT {_COLUMNS} FROM trades WHERE id = ?", (trade_id,)
        )
        row = await cursor.fetchone()
        return _row_to_trade(row) if row is not None else None

    async def list_open_trades(self) -> list[Trade]:
        """Return every OPEN trade, oldest first."""
        cursor = await self._database.db.execute(
            f"SELECT {_COLUMNS} FROM trades WHERE status = ? ORDER BY id ASC",
            (TradeStatus.OPEN.value,),
        )
        rows = await cursor.fetchall()
        return [_row_to_trade(row) for row in rows]

    async def find_open_trade(self, pair: str) -> Trade | None:
        """Return the oldest OPEN trade for a pair, if any."""
        cursor = await self._database.db.execute(
            f"SELECT {_COLUMNS} FROM trades WHERE pair = ? AND status = ? "
            "ORDER BY id ASC LIMIT 1",
            (pair, TradeStatus.OPEN.value),
        )
        row = await cursor.fetchone()
        return _row_to_trade(row) if row is not None else None
