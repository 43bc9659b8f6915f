"""Trade persistence layer.

Provides the SQLite database manager and the typed trade store used for
the OPEN -> CLOSED / CLOSED_MANUALLY lifecycle.
"""

from spotbot.data.database import TradeDatabase
from spotbot.data.store import TradeStore

__all__ = ["TradeDatabase", "TradeStore"]
