"""Custom exceptions for the spot scanner bot.

All gateway, sizing and store exceptions live here to avoid circular
imports between modules. ccxt errors never leave the exchange package;
they are translated into this hierarchy at the gateway boundary.
"""


class BotError(Exception):
    """Base exception for all bot errors."""


class ConfigurationError(BotError):
    """Raised when required configuration (e.g. API credentials) is missing or invalid.

    Fatal at startup only.
    """


class AuthError(ConfigurationError):
    """Raised when the venue rejects the configured credentials."""


class TransientRemoteError(BotError):
    """Raised on timeouts and network failures talking to the venue.

    Contained to the unit of work that hit it (one pair, one bar).
    """


class NotFoundError(BotError):
    """Raised when a pair is unknown to the venue or to the cached metadata."""


class InsufficientHistoryError(BotError):
    """Raised when a candle window is too short for the configured indicators."""


class PrecisionViolation(BotError):
    """Raised when an order cannot satisfy the venue's precision filters."""


class BelowMinNotionalError(PrecisionViolation):
    """Raised when a rounded order value falls below the pair's minimum notional."""


class OrderRejectedError(BotError):
    """Base class for orders the venue refused."""


class InsufficientFundsError(OrderRejectedError):
    """Raised when the account balance cannot cover the order."""


class RejectedByVenueError(OrderRejectedError):
    """Raised when the venue rejects an order for any other reason."""
