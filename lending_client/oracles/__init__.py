"""Price oracle implementations."""
from .ledger_feed import LedgerFeedOracle
from .pyth import PythOracle

__all__ = ["LedgerFeedOracle", "PythOracle"]
