"""Private address store protocol — persistence keyed by owner address."""
from typing import Protocol

from ..models import PrivateAddressEntry


class PrivateAddressStore(Protocol):
    """Abstract interface for persisting private address entries per owner."""

    def load(self, owner: str) -> list[PrivateAddressEntry]: ...

    def save(self, owner: str, entries: list[PrivateAddressEntry]) -> None: ...
