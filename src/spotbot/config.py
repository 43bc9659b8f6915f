"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _group_config(prefix: str) -> SettingsConfigDict:
    """Settings group reading its prefixed keys from the environment and .env.

    Keys that belong to other groups share the same .env file and are ignored.
    """
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class ExchangeSettings(BaseSettings):
    """Binance spot connection settings."""

    model_config = _group_config("BINANCE_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    testnet: bool = False
    default_interval: str = "1h"
    request_timeout: float = 20.0  # seconds, applied to every remote call

    @property
    def has_credentials(self) -> bool:
        return bool(
            self.api_key.get_secret_value().strip()
            and self.api_secret.get_secret_value().strip()
        )


class TradingSettings(BaseSettings):
    """Scan and entry parameters."""

    model_config = _group_config("TRADE_")

    quote_asset: str = "USDT"
    unit_notional: Decimal = Decimal("12")  # quote units spent per buy
    max_pairs_per_round: int = 30
    concurrent_requests: int = 5
    candle_limit: int = 200
    exit_candle_limit: int = 50
    buy_budget_pct: Decimal = Decimal("0.9")


class SignalSettings(BaseSettings):
    """Indicator lookbacks used by the entry and exit rules."""

    model_config = _group_config("SIGNAL_")

    supertrend_atr_period: int = 10
    supertrend_multiplier: Decimal = Decimal("3")
    sma_low_period: int = 3
    sma_high_period: int = 5
    rsi_period: int = 2


class SchedulerSettings(BaseSettings):
    """Scan scheduling. The cron expression uses the standard 5-field crontab format."""

    model_config = _group_config("SCHEDULER_")

    enabled: bool = True
    cron: str = "0 * * * *"
    run_on_start: bool = True


class MonitorSettings(BaseSettings):
    """Exit monitor stream settings."""

    model_config = _group_config("MONITOR_")

    queue_size: int = 16
    reconnect_delay: float = 5.0
    reseed_after_round: bool = False


class DatabaseSettings(BaseSettings):
    """Trade store location and connection retry policy."""

    model_config = _group_config("DB_")

    path: str = "data/trades.db"
    connect_retries: int = 3
    retry_base_delay: float = 2.0


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"
    log_file: str = ""
    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)
    trading: TradingSettings = Field(default_factory=TradingSettings)
    signal: SignalSettings = Field(default_factory=SignalSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
