"""Utilization-based rate curve and linear interest accrual — no I/O.

Utilization, rates and curve parameters are integers at INTEREST_PRECISION
(``1_000_000_000`` = 100%). Annual rates are simple (non-compounding) rates.
"""
from __future__ import annotations

from dataclasses import dataclass

from .precision import INTEREST_PRECISION_FACTOR

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


@dataclass(frozen=True)
class InterestRates:
    """Annual borrow and supply rates at INTEREST_PRECISION."""

    borrow_rate: int
    supply_rate: int


def calc_utilization(total_borrowed: int, total_supplied: int) -> int:
    """Return pool utilization, 0 for an empty pool and capped at 100%."""
    if total_supplied <= 0:
        return 0
    utilization = total_borrowed * INTEREST_PRECISION_FACTOR // total_supplied
    return min(max(utilization, 0), INTEREST_PRECISION_FACTOR)


def rate_curve(
    utilization: int, optimal: int, under_slope: int, over_slope: int
) -> InterestRates:
    """Evaluate the kinked rate curve.

    Below the optimal utilization the borrow rate climbs linearly to
    ``under_slope``; above it the remaining ``over_slope`` is spread over the
    rest of the utilization range:

        u < optimal:  borrow = u * under_slope / optimal
        otherwise:    borrow = under_slope + (u - optimal) * over_slope / (1 - optimal)
        supply = borrow * u
    """
    if not 0 < optimal < INTEREST_PRECISION_FACTOR:
        raise ValueError(f"Optimal utilization must be strictly between 0 and 1: {optimal}")
    if not 0 <= utilization <= INTEREST_PRECISION_FACTOR:
        raise ValueError(f"Utilization must be within [0, 1]: {utilization}")

    if utilization < optimal:
        borrow_rate = utilization * under_slope // optimal
    else:
        borrow_rate = under_slope + (utilization - optimal) * over_slope // (
            INTEREST_PRECISION_FACTOR - optimal
        )

    supply_rate = borrow_rate * utilization // INTEREST_PRECISION_FACTOR
    return InterestRates(borrow_rate=borrow_rate, supply_rate=supply_rate)


def accrue(principal: int, annual_rate: int, last_updated_ts: int, now: int) -> int:
    """Return ``principal`` grown by linear interest since ``last_updated_ts``.

        accrued = principal * (1 + annual_rate * elapsed / SECONDS_PER_YEAR)

    ``principal`` must be the authoritative on-chain amount. Feeding a previous
    result back in counts the same interval twice.
    """
    if principal < 0:
        raise ValueError(f"Principal must be non-negative: {principal}")
    if annual_rate < 0:
        raise ValueError(f"Annual rate must be non-negative: {annual_rate}")

    elapsed = now - last_updated_ts
    if elapsed <= 0:
        return principal

    scale = INTEREST_PRECISION_FACTOR * SECONDS_PER_YEAR
    return principal * (scale + annual_rate * elapsed) // scale
