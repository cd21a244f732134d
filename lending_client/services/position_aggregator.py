"""Risk aggregation — renders raw snapshots into Assets and a UserPosition.

Pure functions, no I/O. One pass builds every asset's accrued balances and
rates, aggregates them into the position, then fills in the per-asset limits
that depend on the aggregate (borrowable value, withdrawable amount).

A problem with a single asset (zero price, bad curve parameters, zero LTV)
is logged and degrades that asset to zero limits; the other assets still
render. Debt that cannot be priced makes the health factor unknown (NaN)
and zeroes every limit, since the collateral it needs cannot be computed.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable

from ..errors import AssetNotFound
from ..interest import InterestRates, accrue, calc_utilization, rate_curve
from ..models import Action, Asset, AssetConfig, AssetSnapshot, UserPosition
from ..precision import (
    PERCENTAGE_PRECISION_FACTOR,
    apply_ltv,
    token_to_usd,
    usd_to_token,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-asset rendering
# ---------------------------------------------------------------------------


def _rates(config: AssetConfig, utilization: int) -> InterestRates:
    try:
        return rate_curve(
            utilization,
            config.optimal_utilization_rate,
            config.under_optimal_slope,
            config.over_optimal_slope,
        )
    except ValueError as e:
        logger.warning("Invalid rate curve for %s, using zero rates: %s", config.asset_id, e)
        return InterestRates(borrow_rate=0, supply_rate=0)


def _accrue(principal: int, rate: int, last_updated_ts: int, now: int) -> int:
    return accrue(max(principal, 0), max(rate, 0), last_updated_ts, now)


def build_asset(config: AssetConfig, snapshot: AssetSnapshot, now: int) -> Asset:
    """Render one asset: utilization, rates, accrued balances and liquidity.

    Limits are left at zero; ``aggregate`` fills them in.
    """
    utilization = calc_utilization(snapshot.total_borrowed, snapshot.total_supplied)
    rates = _rates(config, utilization)

    deposit_ts = snapshot.deposit_accumulator.last_updated_ts
    borrow_ts = snapshot.borrow_accumulator.last_updated_ts

    total_supplied = _accrue(snapshot.total_supplied, rates.supply_rate, deposit_ts, now)
    total_borrowed = _accrue(snapshot.total_borrowed, rates.borrow_rate, borrow_ts, now)

    price_valid = snapshot.price > 0
    if not price_valid:
        logger.warning("Asset %s has no valid price, limits disabled", config.asset_id)

    return Asset(
        config=config,
        snapshot=snapshot,
        utilization_rate=utilization,
        borrow_rate=rates.borrow_rate,
        supply_rate=rates.supply_rate,
        user_supplied_with_interest=_accrue(
            snapshot.position.principal_supplied, rates.supply_rate, deposit_ts, now
        ),
        user_borrowed_with_interest=_accrue(
            snapshot.position.principal_borrowed, rates.borrow_rate, borrow_ts, now
        ),
        total_supplied_with_interest=total_supplied,
        total_borrowed_with_interest=total_borrowed,
        market_liquidity=max(0, total_supplied - total_borrowed),
        price_valid=price_valid,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _usd(asset: Asset, amount: int) -> int:
    if not asset.price_valid:
        return 0
    return token_to_usd(amount, asset.decimals, asset.price)


def _collateral_needed(asset: Asset, borrowed: int) -> int:
    """USD collateral required at the asset's own LTV to back ``borrowed``."""
    if borrowed <= 0:
        return 0
    ltv = asset.config.loan_to_value
    if ltv <= 0:
        logger.warning("Asset %s has LTV 0, excluded from collateral requirement", asset.id)
        return 0
    return _usd(asset, borrowed) * PERCENTAGE_PRECISION_FACTOR // ltv


def _totals(rows: Iterable[tuple[Asset, int, int]]) -> tuple[int, int, int]:
    """Sum (supplied value, borrowed value, collateral needed) over asset rows."""
    supplied_value = borrowed_value = needed = 0
    for asset, supplied, borrowed in rows:
        supplied_value += _usd(asset, supplied)
        borrowed_value += _usd(asset, borrowed)
        needed += _collateral_needed(asset, borrowed)
    return supplied_value, borrowed_value, needed


def _unpriced_debt(rows: Iterable[tuple[Asset, int, int]]) -> list[str]:
    """Ids of assets carrying debt without a valid price."""
    return [asset.id for asset, _, borrowed in rows if borrowed > 0 and not asset.price_valid]


def health_factor(total_supplied_value: int, collateral_value_needed: int) -> float:
    """Supplied value over required collateral, ``math.inf`` without debt."""
    if collateral_value_needed <= 0:
        return math.inf
    scaled = total_supplied_value * PERCENTAGE_PRECISION_FACTOR // collateral_value_needed
    return scaled / PERCENTAGE_PRECISION_FACTOR


def _with_limits(asset: Asset, excess: int) -> Asset:
    if not asset.price_valid:
        return replace(asset, borrowable_value_usd=0, withdrawable_amount=0)

    borrowable = 0
    if asset.config.is_borrowable and asset.config.loan_to_value > 0:
        borrowable = min(
            _usd(asset, asset.market_liquidity),
            apply_ltv(excess, asset.config.loan_to_value),
        )

    supplied = asset.user_supplied_with_interest
    if _usd(asset, supplied) <= excess:
        withdrawable = supplied
    else:
        withdrawable = usd_to_token(excess, asset.decimals, asset.price)

    return replace(asset, borrowable_value_usd=borrowable, withdrawable_amount=withdrawable)


def aggregate(assets: Iterable[Asset]) -> tuple[tuple[Asset, ...], UserPosition]:
    """Aggregate rendered assets into a UserPosition and fill in their limits."""
    assets = tuple(assets)
    rows = [(a, a.user_supplied_with_interest, a.user_borrowed_with_interest) for a in assets]
    supplied_value, borrowed_value, needed = _totals(rows)

    unpriced = _unpriced_debt(rows)
    if unpriced:
        logger.warning(
            "Debt in %s has no valid price, health factor unknown and limits disabled",
            ", ".join(unpriced),
        )
        hf = math.nan
        excess = 0
    else:
        hf = health_factor(supplied_value, needed)
        excess = max(0, supplied_value - needed)

    position = UserPosition(
        health_factor=hf,
        total_supplied_value=supplied_value,
        total_borrowed_value=borrowed_value,
        collateral_value_needed=needed,
        excess_collateral_value=excess,
    )
    return tuple(_with_limits(a, excess) for a in assets), position


def render(
    configs: Iterable[AssetConfig], snapshots: dict[str, AssetSnapshot], now: int
) -> tuple[tuple[Asset, ...], UserPosition]:
    """Render every configured asset that has a snapshot, in config order."""
    return aggregate(
        build_asset(config, snapshots[config.asset_id], now)
        for config in configs
        if config.asset_id in snapshots
    )


def replace_asset(
    assets: Iterable[Asset], config: AssetConfig, snapshot: AssetSnapshot, now: int
) -> tuple[tuple[Asset, ...], UserPosition]:
    """Re-render one asset from a fresh snapshot and re-aggregate the rest."""
    rebuilt = build_asset(config, snapshot, now)
    updated: list[Asset] = []
    found = False
    for asset in assets:
        if asset.id == config.asset_id:
            updated.append(rebuilt)
            found = True
        else:
            updated.append(asset)
    if not found:
        updated.append(rebuilt)
    return aggregate(updated)


# ---------------------------------------------------------------------------
# Action limits and previews
# ---------------------------------------------------------------------------


def max_amount(asset: Asset, action: Action, private: bool = False) -> int:
    """Largest raw amount the user may enter for ``action`` on ``asset``."""
    wallet = asset.wallet_balance_private if private else asset.wallet_balance

    if action is Action.DEPOSIT:
        return max(0, wallet)
    if action is Action.WITHDRAW:
        return min(asset.withdrawable_amount, asset.market_liquidity)
    if action is Action.BORROW:
        if not asset.price_valid:
            return 0
        borrowable = usd_to_token(asset.borrowable_value_usd, asset.decimals, asset.price)
        return min(borrowable, asset.market_liquidity)
    if action is Action.REPAY:
        return max(0, min(asset.user_borrowed_with_interest, wallet))
    raise ValueError(f"Unknown action: {action!r}")


def preview_health_factor(
    assets: Iterable[Asset], asset_id: str, action: Action, amount: int
) -> float:
    """Health factor the position would have after applying ``action``.

    Withdrawals and repayments never take a balance below zero. NaN when
    any remaining debt has no valid price.
    """
    assets = tuple(assets)
    if not any(a.id == asset_id for a in assets):
        raise AssetNotFound(asset_id)

    rows = []
    for asset in assets:
        supplied = asset.user_supplied_with_interest
        borrowed = asset.user_borrowed_with_interest
        if asset.id == asset_id:
            if action is Action.DEPOSIT:
                supplied += amount
            elif action is Action.WITHDRAW:
                supplied = max(0, supplied - amount)
            elif action is Action.BORROW:
                borrowed += amount
            elif action is Action.REPAY:
                borrowed = max(0, borrowed - amount)
        rows.append((asset, supplied, borrowed))

    if _unpriced_debt(rows):
        return math.nan
    supplied_value, _, needed = _totals(rows)
    return health_factor(supplied_value, needed)
