"""Exchange-specific type definitions and utility functions.

All monetary values use Decimal. Never use float for prices, quantities, or fees.
"""

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class ExchangeFilters:
    """Precision constraints for a spot pair.

    Any field may be None when the venue does not publish that filter for the
    pair. tick_size is carried for completeness; sizing only uses step_size
    and min_notional.
    """

    symbol: str
    step_size: Decimal | None = None
    tick_size: Decimal | None = None
    min_notional: Decimal | None = None


@dataclass
class MarketInfo:
    """One entry of the cached exchange metadata snapshot."""

    symbol: str
    base: str
    quote: str
    active: bool = True
    spot: bool = True
    filters: ExchangeFilters = field(default_factory=lambda: ExchangeFilters(symbol=""))


def round_to_step(value: Decimal, step: Decimal | None) -> Decimal:
    """Round a value down to the nearest step increment.

    Uses integer division to ensure we always round DOWN (never up),
    which prevents spending past the budget or selling more than is held.
    A missing or zero step passes the value through unchanged.

    Args:
        value: The raw quantity to round.
        step: The minimum increment (e.g., 0.001), or None.

    Returns:
        The value rounded down to the nearest step.
    """
    if not step:
        return value
    return (value // step) * step


def to_decimal(raw: object) -> Decimal | None:
    """Convert a ccxt numeric field to Decimal, mapping missing/zero values to None."""
    if raw is None or raw == "":
        return None
    value = Decimal(str(raw))
    if value == 0:
        return None
    return value
