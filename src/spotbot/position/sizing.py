"""Order size calculation with exchange precision constraints.

All calculations use Decimal arithmetic exclusively -- no float conversions.
Uses round_to_step from exchange/types.py for step_size rounding (always down).

Buy sizing flow:
1. Fetch current price and the pair's cached filters
2. raw_qty = desired_notional / price
3. Round down to the pair's step_size
4. Reject when rounded_qty * price < min_notional

Sell sizing only applies step 3: never sell more than is held.
"""

from decimal import Decimal

from spotbot.exceptions import BelowMinNotionalError, PrecisionViolation
from spotbot.exchange.client import ExchangeGateway
from spotbot.exchange.metadata import MarketMetadataCache
from spotbot.exchange.types import round_to_step
from spotbot.logging import get_logger

logger = get_logger(__name__)


class OrderSizer:
    """Converts desired notionals and quantities into venue-legal quantities.

    Args:
        gateway: Exchange gateway used for the current price.
        metadata: Shared exchange metadata cache for per-pair filters.
    """

    def __init__(self, gateway: ExchangeGateway, metadata: MarketMetadataCache) -> None:
        self._gateway = gateway
        self._metadata = metadata

    async def size_buy(self, pair: str, notional: Decimal) -> tuple[Decimal, Decimal]:
        """Size a market buy spending at most ``notional`` quote units.

        Args:
            pair: Pair symbol.
            notional: Desired order value in the quote asset.

        Returns:
            Tuple of (quantity, price) where quantity is floored to step_size.

        Raises:
            BelowMinNotionalError: If the rounded order value is below min_notional.
        """
        price = await self._gateway.fetch_price(pair)
        if price <= 0:
            raise PrecisionViolation(f"Non-positive price {price} for {pair}")
        filters = await self._metadata.get_filters(pair)

        raw_qty = notional / price
        quantity = round_to_step(raw_qty, filters.step_size)
        order_value = quantity * price

        if quantity <= 0:
            raise BelowMinNotionalError(
                f"Notional {notional} rounds to zero quantity at step {filters.step_size} for {pair}"
            )
        if filters.min_notional is not None and order_value < filters.min_notional:
            raise BelowMinNotionalError(
                f"Notional {order_value} below minimum {filters.min_notional} for {pair}"
            )

        logger.debug(
            "buy_sized",
            pair=pair,
            price=str(price),
            raw_qty=str(raw_qty),
            quantity=str(quantity),
            step_size=str(filters.step_size),
        )
        return quantity, price

    async def size_sell(self, pair: str, quantity: Decimal) -> Decimal:
        """Round a sell quantity down to the pair's step_size."""
        filters = await self._metadata.get_filters(pair)
        return round_to_step(quantity, filters.step_size)
