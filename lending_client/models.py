"""Data models — all frozen (immutable)."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from .errors import AssetNotFound


class Action(str, Enum):
    """State-changing operations a user can request."""

    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"


@dataclass(frozen=True)
class AssetConfig:
    """Static metadata for one listed asset.

    ``loan_to_value`` is in basis points; curve parameters are at
    INTEREST_PRECISION.
    """

    asset_id: str
    address: str
    name: str
    ticker: str
    decimals: int
    oracle: str
    loan_to_value: int
    is_borrowable: bool
    deposit_cap: int
    optimal_utilization_rate: int
    under_optimal_slope: int
    over_optimal_slope: int


@dataclass(frozen=True)
class AccumulatorRecord:
    """Ledger-side cumulative interest state and its last update time."""

    value: int = 0
    last_updated_ts: int = 0


@dataclass(frozen=True)
class PositionRecord:
    """A user's raw (non-accrued) principal in one market asset."""

    principal_supplied: int = 0
    principal_borrowed: int = 0


@dataclass(frozen=True)
class AssetSnapshot:
    """Raw per-asset values read from the ledger and oracle in one fetch."""

    asset_id: str
    price: int
    wallet_balance: int
    wallet_balance_private: int
    position: PositionRecord
    total_supplied: int
    total_borrowed: int
    deposit_accumulator: AccumulatorRecord
    borrow_accumulator: AccumulatorRecord


@dataclass(frozen=True)
class Asset:
    """Rendered view of one asset: static config, raw snapshot and derived values."""

    config: AssetConfig
    snapshot: AssetSnapshot
    utilization_rate: int = 0
    borrow_rate: int = 0
    supply_rate: int = 0
    user_supplied_with_interest: int = 0
    user_borrowed_with_interest: int = 0
    total_supplied_with_interest: int = 0
    total_borrowed_with_interest: int = 0
    market_liquidity: int = 0
    borrowable_value_usd: int = 0
    withdrawable_amount: int = 0
    price_valid: bool = True

    @property
    def id(self) -> str:
        return self.config.asset_id

    @property
    def ticker(self) -> str:
        return self.config.ticker

    @property
    def decimals(self) -> int:
        return self.config.decimals

    @property
    def price(self) -> int:
        return self.snapshot.price

    @property
    def wallet_balance(self) -> int:
        return self.snapshot.wallet_balance

    @property
    def wallet_balance_private(self) -> int:
        return self.snapshot.wallet_balance_private


@dataclass(frozen=True)
class UserPosition:
    """Aggregate risk metrics for the active account. USD values at PRICE_PRECISION."""

    health_factor: float = math.inf
    total_supplied_value: int = 0
    total_borrowed_value: int = 0
    collateral_value_needed: int = 0
    excess_collateral_value: int = 0


@dataclass(frozen=True)
class CurrentViewState:
    """The visible state: replaced wholesale, never mutated in place."""

    account: str | None = None
    assets: tuple[Asset, ...] = ()
    position: UserPosition = field(default_factory=UserPosition)
    epoch_id: int = 0

    def get_asset(self, asset_id: str) -> Asset:
        for asset in self.assets:
            if asset.id == asset_id:
                return asset
        raise AssetNotFound(asset_id)


@dataclass(frozen=True)
class PrivateAddressEntry:
    """A derived private address and the secret it was derived from."""

    address: str
    secret: int


@dataclass(frozen=True)
class Receipt:
    """Outcome of a successfully submitted ledger operation."""

    tx_hash: str
    status: str = "success"
    block_number: int | None = None
