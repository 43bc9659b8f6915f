"""Entry point for the spot scanner bot.

Wires all components together, runs the fatal startup checks and starts
the orchestrator. Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. BinanceGateway (ccxt REST + kline streams)
2. TradeDatabase / TradeStore (aiosqlite)
3. MarketMetadataCache (5-minute exchange metadata snapshot)
4. OrderSizer (step size / min notional)
5. Scanner (scan rounds)
6. ExitMonitor (per-position kline streams)
7. Reconciler (boot-time store/venue alignment)
8. Orchestrator (boot sequence and scheduling)
"""

import asyncio
import signal
import sys
from typing import Any

import aiosqlite
from pydantic import ValidationError

from spotbot.config import AppSettings
from spotbot.data.database import TradeDatabase
from spotbot.data.store import TradeStore
from spotbot.exceptions import BotError, ConfigurationError
from spotbot.exchange.binance_client import BinanceGateway
from spotbot.exchange.metadata import MarketMetadataCache
from spotbot.logging import get_logger, setup_logging
from spotbot.market_data.exit_monitor import ExitMonitor
from spotbot.market_data.scanner import Scanner
from spotbot.orchestrator import Orchestrator
from spotbot.position.reconciler import Reconciler
from spotbot.position.sizing import OrderSizer


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build the full dependency graph from settings.

    Note: Does NOT connect anything -- that happens in run().
    """
    interval = settings.exchange.default_interval

    gateway = BinanceGateway(
        settings.exchange,
        stream_reconnect_delay=settings.monitor.reconnect_delay,
    )
    database = TradeDatabase(
        settings.database.path,
        connect_retries=settings.database.connect_retries,
        retry_base_delay=settings.database.retry_base_delay,
    )
    store = TradeStore(database)
    metadata = MarketMetadataCache(gateway)
    sizer = OrderSizer(gateway, metadata)

    scanner = Scanner(
        settings=settings.trading,
        signal_settings=settings.signal,
        gateway=gateway,
        metadata=metadata,
        sizer=sizer,
        store=store,
        interval=interval,
    )
    exit_monitor = ExitMonitor(
        gateway=gateway,
        store=store,
        sizer=sizer,
        trading_settings=settings.trading,
        signal_settings=settings.signal,
        monitor_settings=settings.monitor,
        interval=interval,
    )
    reconciler = Reconciler(gateway, store)
    orchestrator = Orchestrator(
        settings=settings,
        scanner=scanner,
        exit_monitor=exit_monitor,
        reconciler=reconciler,
    )

    return {
        "gateway": gateway,
        "database": database,
        "store": store,
        "metadata": metadata,
        "sizer": sizer,
        "scanner": scanner,
        "exit_monitor": exit_monitor,
        "reconciler": reconciler,
        "orchestrator": orchestrator,
    }


def check_credentials(settings: AppSettings) -> None:
    """Raise ConfigurationError when API credentials are missing."""
    if not settings.exchange.has_credentials:
        raise ConfigurationError(
            "Binance API credentials are not configured "
            "(set BINANCE_API_KEY and BINANCE_API_SECRET)"
        )


def _setup_signal_handlers(orchestrator: Orchestrator) -> None:
    """SIGINT/SIGTERM trigger a graceful stop. Must be called inside the running loop."""
    logger = get_logger("spotbot.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(orchestrator.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def run() -> int:
    """Run the bot until a shutdown signal. Returns the process exit code."""
    try:
        settings = AppSettings()
    except ValidationError as e:
        setup_logging()
        get_logger("spotbot.main").critical("startup_invalid_settings", error=str(e))
        return 1
    setup_logging(settings.log_level, settings.log_format, settings.log_file)
    logger = get_logger("spotbot.main")
    logger.info("spotbot_starting", testnet=settings.exchange.testnet)

    try:
        check_credentials(settings)
    except ConfigurationError as e:
        logger.critical("startup_configuration_error", error=str(e))
        return 1

    components = _build_components(settings)
    gateway: BinanceGateway = components["gateway"]
    database: TradeDatabase = components["database"]

    try:
        try:
            await gateway.connect()
            await gateway.check_connectivity()
        except BotError as e:
            logger.critical("startup_connectivity_failed", error=str(e))
            return 1

        try:
            await database.connect()
        except (aiosqlite.Error, OSError) as e:
            logger.critical("startup_trade_store_unavailable", error=str(e))
            return 1

        _setup_signal_handlers(components["orchestrator"])
        await components["orchestrator"].start()
        return 0
    finally:
        await database.close()
        await gateway.close()
        logger.info("spotbot_stopped")


def main() -> None:
    """Synchronous entry point."""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
