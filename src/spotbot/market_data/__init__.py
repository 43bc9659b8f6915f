"""Market data layer -- universe scanning and stream-driven exit monitoring."""

from spotbot.market_data.exit_monitor import ExitMonitor
from spotbot.market_data.scanner import PairEvaluation, Scanner, run_bounded

__all__ = ["ExitMonitor", "PairEvaluation", "Scanner", "run_bounded"]
