"""Ledger client protocol — lending contract and token RPC abstraction."""
from typing import Protocol, Sequence

from ..models import AccumulatorRecord, PositionRecord, Receipt
from ..operations import Operation, TransferAuthorization


class LedgerClient(Protocol):
    """Abstract interface for reading lending state and submitting operations."""

    async def get_public_balance(self, identity: str, asset: str) -> int: ...

    async def get_private_balance(self, identity: str, asset: str) -> int: ...

    async def get_position(
        self, identity: str, market_id: int, asset: str
    ) -> PositionRecord: ...

    async def get_total_supplied(self, market_id: int, asset: str) -> int: ...

    async def get_total_borrowed(self, market_id: int, asset: str) -> int: ...

    async def get_accumulators(
        self, market_id: int, asset: str
    ) -> tuple[AccumulatorRecord, AccumulatorRecord]: ...

    async def set_public_authorization(self, request: TransferAuthorization) -> None: ...

    async def create_private_authorization(self, request: TransferAuthorization) -> str: ...

    async def submit(
        self, operation: Operation, authorizations: Sequence[str] = ()
    ) -> Receipt: ...
