"""Cancellation-safe refresh of the visible lending state.

Every refresh runs in an epoch tagged with the account that was active when it
started. Results are written only if, under the apply lock, the epoch was not
cancelled and its account is still the active one. Switching accounts cancels
every epoch of the previous account; a new full refresh supersedes the
previous full refresh; a targeted refresh supersedes an older targeted
refresh of the same asset.

In-flight ledger calls are never aborted. Their results are dropped at apply
time.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..errors import AssetNotFound, ContractNotReady, StaleResult
from ..interfaces import LedgerClient, PriceOracle
from ..models import AssetConfig, AssetSnapshot, CurrentViewState
from .position_aggregator import render, replace_asset

logger = logging.getLogger(__name__)


class RefreshOutcome(str, Enum):
    APPLIED = "applied"
    SUPERSEDED = "superseded"
    FAILED = "failed"


class CancellationToken:
    """Cooperative cancellation flag shared by the fetches of one epoch."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise StaleResult("Refresh epoch was superseded")


@dataclass
class RefreshEpoch:
    """One refresh in flight. ``scope`` is None for a full refresh."""

    epoch_id: int
    account: str
    scope: str | None = None
    token: CancellationToken = field(default_factory=CancellationToken)


async def _gather_all(*aws):
    """Like ``asyncio.gather`` but waits for every call, then raises the first error."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class RefreshCoordinator:
    """Owns the CurrentViewState and every write to it."""

    def __init__(
        self,
        ledger: LedgerClient,
        oracle: PriceOracle,
        assets: dict[str, AssetConfig],
        market_id: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.oracle = oracle
        self.asset_configs = dict(assets)
        self.market_id = market_id
        self._clock = clock

        self._lock = asyncio.Lock()
        self._epoch_ids = itertools.count(1)
        self._open: dict[int, RefreshEpoch] = {}
        self._state = CurrentViewState()
        # epoch id of the fetch each visible asset snapshot came from
        self._asset_epochs: dict[str, int] = {}

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> CurrentViewState:
        return self._state

    @property
    def active_account(self) -> str | None:
        return self._state.account

    @property
    def is_loading(self) -> bool:
        """True while a full refresh for the active account is in flight."""
        return any(
            e.scope is None
            and e.account == self._state.account
            and not e.token.cancelled
            for e in self._open.values()
        )

    async def set_active_account(self, account: str) -> None:
        """Make ``account`` active, discarding everything fetched for others."""
        async with self._lock:
            for epoch in self._open.values():
                if epoch.account != account:
                    epoch.token.cancel()
            if account != self._state.account:
                logger.info("Active account switched to %s", account)
                self._state = CurrentViewState(account=account)
                self._asset_epochs = {}

    # ------------------------------------------------------------------
    # Epochs
    # ------------------------------------------------------------------

    async def _open_epoch(self, scope: str | None) -> RefreshEpoch:
        async with self._lock:
            account = self._state.account
            if account is None:
                raise ContractNotReady("No active account to refresh")

            for epoch in self._open.values():
                if epoch.scope == scope:
                    epoch.token.cancel()

            epoch = RefreshEpoch(epoch_id=next(self._epoch_ids), account=account, scope=scope)
            self._open[epoch.epoch_id] = epoch
            return epoch

    def _is_current(self, epoch: RefreshEpoch) -> bool:
        return not epoch.token.cancelled and epoch.account == self._state.account

    async def _fetch_snapshot(self, epoch: RefreshEpoch, config: AssetConfig) -> AssetSnapshot:
        epoch.token.raise_if_cancelled()
        (
            price,
            wallet_balance,
            wallet_balance_private,
            position,
            total_supplied,
            total_borrowed,
            accumulators,
        ) = await _gather_all(
            self.oracle.get_price(config.oracle),
            self.ledger.get_public_balance(epoch.account, config.address),
            self.ledger.get_private_balance(epoch.account, config.address),
            self.ledger.get_position(epoch.account, self.market_id, config.address),
            self.ledger.get_total_supplied(self.market_id, config.address),
            self.ledger.get_total_borrowed(self.market_id, config.address),
            self.ledger.get_accumulators(self.market_id, config.address),
        )
        epoch.token.raise_if_cancelled()

        deposit_accumulator, borrow_accumulator = accumulators
        return AssetSnapshot(
            asset_id=config.asset_id,
            price=price,
            wallet_balance=wallet_balance,
            wallet_balance_private=wallet_balance_private,
            position=position,
            total_supplied=total_supplied,
            total_borrowed=total_borrowed,
            deposit_accumulator=deposit_accumulator,
            borrow_accumulator=borrow_accumulator,
        )

    async def _run(self, epoch: RefreshEpoch, configs: list[AssetConfig]) -> RefreshOutcome:
        try:
            snapshots = await _gather_all(
                *(self._fetch_snapshot(epoch, config) for config in configs)
            )
        except StaleResult:
            logger.debug("Refresh epoch %d superseded during fetch", epoch.epoch_id)
            return RefreshOutcome.SUPERSEDED
        except Exception as e:
            if epoch.token.cancelled:
                return RefreshOutcome.SUPERSEDED
            logger.error(
                "Refresh epoch %d for %s failed, keeping last state: %s",
                epoch.epoch_id, epoch.account, e,
            )
            return RefreshOutcome.FAILED
        finally:
            self._open.pop(epoch.epoch_id, None)

        async with self._lock:
            if not self._is_current(epoch):
                logger.debug("Discarding result of superseded epoch %d", epoch.epoch_id)
                return RefreshOutcome.SUPERSEDED
            return self._apply(epoch, snapshots)

    def _apply(self, epoch: RefreshEpoch, snapshots: list[AssetSnapshot]) -> RefreshOutcome:
        """Write fetched snapshots into the visible state. Caller holds the lock."""
        now = int(self._clock())
        current = {a.id: a.snapshot for a in self._state.assets}

        if epoch.scope is not None:
            snapshot = snapshots[0]
            if self._asset_epochs.get(snapshot.asset_id, 0) > epoch.epoch_id:
                return RefreshOutcome.SUPERSEDED
            assets, position = replace_asset(
                self._state.assets, self.asset_configs[snapshot.asset_id], snapshot, now
            )
            self._asset_epochs[snapshot.asset_id] = epoch.epoch_id
        else:
            merged = dict(current)
            for snapshot in snapshots:
                # keep snapshots from targeted refreshes that started later
                if self._asset_epochs.get(snapshot.asset_id, 0) > epoch.epoch_id:
                    continue
                merged[snapshot.asset_id] = snapshot
                self._asset_epochs[snapshot.asset_id] = epoch.epoch_id
            assets, position = render(self.asset_configs.values(), merged, now)

        self._state = CurrentViewState(
            account=epoch.account,
            assets=assets,
            position=position,
            epoch_id=max(epoch.epoch_id, self._state.epoch_id),
        )
        return RefreshOutcome.APPLIED

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def refresh_all(self) -> RefreshOutcome:
        """Fetch every configured asset concurrently and apply them together."""
        epoch = await self._open_epoch(None)
        outcome = await self._run(epoch, list(self.asset_configs.values()))
        logger.debug("Full refresh epoch %d: %s", epoch.epoch_id, outcome.value)
        return outcome

    async def refresh_asset(self, asset_id: str) -> RefreshOutcome:
        """Re-fetch one asset and re-aggregate the position around it."""
        config = self.asset_configs.get(asset_id)
        if config is None:
            raise AssetNotFound(asset_id)
        epoch = await self._open_epoch(asset_id)
        outcome = await self._run(epoch, [config])
        logger.debug("Refresh of %s epoch %d: %s", asset_id, epoch.epoch_id, outcome.value)
        return outcome
