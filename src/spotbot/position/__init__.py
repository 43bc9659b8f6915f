"""Position layer -- order sizing and boot-time reconciliation."""

from spotbot.position.reconciler import Reconciler
from spotbot.position.sizing import OrderSizer

__all__ = ["OrderSizer", "Reconciler"]
