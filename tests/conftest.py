"""Shared test fixtures for the spot scanner bot."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from spotbot.config import (
    AppSettings,
    ExchangeSettings,
    MonitorSettings,
    SchedulerSettings,
    SignalSettings,
    TradingSettings,
)
from spotbot.data.database import TradeDatabase
from spotbot.data.store import TradeStore
from spotbot.exchange.client import ExchangeGateway
from spotbot.models import Candle


def make_candle(
    ts: int,
    close: str | Decimal,
    high: str | Decimal | None = None,
    low: str | Decimal | None = None,
    open_: str | Decimal | None = None,
) -> Candle:
    """Build a candle; high/low default to close +/- 1."""
    close_d = Decimal(str(close))
    return Candle(
        timestamp_ms=ts,
        open=Decimal(str(open_)) if open_ is not None else close_d,
        high=Decimal(str(high)) if high is not None else close_d + 1,
        low=Decimal(str(low)) if low is not None else close_d - 1,
        close=close_d,
    )


def flat_candles(count: int, close: str = "100") -> list[Candle]:
    """``count`` identical hourly candles."""
    return [make_candle(i * 3_600_000, close) for i in range(count)]


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (dummy API keys, scheduler off)."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(
            api_key="test-api-key",  # type: ignore[arg-type]
            api_secret="test-api-secret",  # type: ignore[arg-type]
            testnet=True,
        ),
        trading=TradingSettings(),
        signal=SignalSettings(),
        scheduler=SchedulerSettings(enabled=False, run_on_start=False),
        monitor=MonitorSettings(),
    )


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Gateway mock; async methods are AsyncMocks via the ABC spec."""
    return MagicMock(spec=ExchangeGateway)


@pytest_asyncio.fixture
async def store(tmp_path) -> TradeStore:  # type: ignore[no-untyped-def]
    """TradeStore backed by a fresh SQLite file."""
    database = TradeDatabase(str(tmp_path / "trades.db"), retry_base_delay=0)
    await database.connect()
    yield TradeStore(database)  # type: ignore[misc]
    await database.close()
