"""Async SQLite database manager for trade persistence.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance.
"""

import asyncio
import os
from typing import Self

import aiosqlite

from spotbot.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pair TEXT NOT NULL,
    order_id TEXT NOT NULL UNIQUE,
    entry_price TEXT NOT NULL,
    quantity TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'OPEN'
        CHECK (status IN ('OPEN', 'CLOSED', 'CLOSED_MANUALLY')),
    exit_price TEXT,
    profit_loss TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_trades_pair ON trades(pair);

CREATE INDEX IF NOT EXISTS idx_trades_status ON trades(status);
"""


class TradeDatabase:
    """Async SQLite connection manager for the trade store.

    Manages database lifecycle including schema creation, WAL mode
    configuration, initial-connection retries, and clean resource cleanup.

    Usage:
        async with TradeDatabase("data/trades.db") as database:
            store = TradeStore(database)
    """

    def __init__(
        self,
        db_path: str = "data/trades.db",
        connect_retries: int = 3,
        retry_base_delay: float = 2.0,
    ) -> None:
        self._db_path = db_path
        self._connect_retries = max(1, connect_retries)
        self._retry_base_delay = retry_base_delay
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the connection and create the schema, retrying with linear backoff.

        The last failure is re-raised once all attempts are exhausted.
        """
        for attempt in range(1, self._connect_retries + 1):
            try:
                await self._open()
                return
            except (aiosqlite.Error, OSError) as exc:
                logger.error(
                    "trade_db_connect_failed",
                    attempt=attempt,
                    max_attempts=self._connect_retries,
                    error=str(exc),
                )
                await self.close()
                if attempt == self._connect_retries:
                    raise
                await asyncio.sleep(self._retry_base_delay * attempt)

    async def _open(self) -> None:
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row

        # Performance pragmas
        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("trade_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("trade_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
