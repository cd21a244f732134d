"""Lending ledger chain client."""
from .client import LedgerRpcClient, LedgerRpcError

__all__ = ["LedgerRpcClient", "LedgerRpcError"]
