"""Fixed-point conversions between token amounts, USD values and basis points.

All functions are integer-only and multiply before dividing. Results are
floored, so converting back and forth is not exactly invertible:

    usd_to_token(token_to_usd(amount, d, p), d, p)

may differ from ``amount`` by one unit of the smaller denomination.
"""
from __future__ import annotations

from decimal import Decimal

# Oracle prices carry this many decimals; USD values share the same scale.
PRICE_PRECISION = 9
PRICE_PRECISION_FACTOR = 10**PRICE_PRECISION

# 10000 = 100.00%
PERCENTAGE_PRECISION = 4
PERCENTAGE_PRECISION_FACTOR = 10**PERCENTAGE_PRECISION

# Utilization, rates and curve parameters (1_000_000_000 = 100%).
INTEREST_PRECISION = 9
INTEREST_PRECISION_FACTOR = 10**INTEREST_PRECISION


def token_to_usd(amount: int, token_decimals: int, price: int) -> int:
    """Convert a raw token amount to a USD value at PRICE_PRECISION."""
    return amount * price // 10**token_decimals


def usd_to_token(usd_value: int, token_decimals: int, price: int) -> int:
    """Convert a USD value at PRICE_PRECISION back to a raw token amount."""
    if price == 0:
        raise ValueError("Cannot convert USD to token amount at price 0")
    return usd_value * 10**token_decimals // price


def apply_ltv(usd_value: int, ltv_bps: int) -> int:
    """Scale a USD value by a loan-to-value ratio given in basis points."""
    return usd_value * ltv_bps // PERCENTAGE_PRECISION_FACTOR


def to_fixed(value: int | float | str, precision: int) -> int:
    """Convert a decimal such as ``0.75`` to an integer at ``precision`` decimals.

    Goes through ``str`` so binary float artifacts (0.7 -> 6999) never leak in.
    """
    return int(Decimal(str(value)).scaleb(precision))
