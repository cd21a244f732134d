"""Service modules"""
from .orchestrator import TransactionOrchestrator
from .private_addresses import PrivateAddressBook
from .refresh import RefreshCoordinator, RefreshOutcome
from .session import LendingSession

__all__ = [
    "LendingSession",
    "PrivateAddressBook",
    "RefreshCoordinator",
    "RefreshOutcome",
    "TransactionOrchestrator",
]
