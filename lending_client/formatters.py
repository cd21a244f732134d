"""Pure parsing and formatting helpers for amounts, rates and health factors."""
from __future__ import annotations

import math
import re

from .errors import InvalidAmount
from .precision import INTEREST_PRECISION_FACTOR, PRICE_PRECISION

_AMOUNT_RE = re.compile(r"^(\d*)(?:\.(\d*))?$")

HEALTH_SAFE = "safe"
HEALTH_WARNING = "warning"
HEALTH_DANGER = "danger"


def parse_token_amount(amount: str, decimals: int) -> int:
    """Parse a decimal string into a raw integer amount.

    Examples:
        ("1.5", 9) -> 1500000000
        ("0.000001", 6) -> 1

    Raises:
        InvalidAmount: the input is empty, not a plain non-negative decimal,
            or carries more fractional digits than ``decimals``.
    """
    text = amount.strip() if isinstance(amount, str) else ""
    match = _AMOUNT_RE.match(text)
    if not text or not match or text == ".":
        raise InvalidAmount(f"Not a valid amount: {amount!r}")

    integer_part, fractional_part = match.group(1) or "0", match.group(2) or ""
    if len(fractional_part) > decimals:
        raise InvalidAmount(
            f"Amount {amount!r} has more than {decimals} decimal places"
        )

    return int(integer_part + fractional_part.ljust(decimals, "0"))


def format_token_amount(amount: int, decimals: int) -> str:
    """Format a raw integer amount as a decimal string without trailing zeros."""
    if amount == 0:
        return "0"
    sign = "-" if amount < 0 else ""
    integer_part, fractional_part = divmod(abs(amount), 10**decimals)
    fraction = str(fractional_part).rjust(decimals, "0").rstrip("0")
    return f"{sign}{integer_part}.{fraction}" if fraction else f"{sign}{integer_part}"


def format_usd_value(usd_value: int, decimals: int = PRICE_PRECISION) -> str:
    """Format a fixed-point USD value with at least two decimals."""
    formatted = format_token_amount(usd_value, decimals)
    integer_part, _, fraction = formatted.partition(".")
    return f"{integer_part}.{fraction.ljust(2, '0')}"


def format_rate(rate: int) -> str:
    """Format a rate at INTEREST_PRECISION as a percentage, e.g. ``'4.50%'``."""
    return f"{rate * 100 / INTEREST_PRECISION_FACTOR:.2f}%"


def format_health_factor(health_factor: float) -> str:
    if math.isnan(health_factor):
        return "unknown"
    if math.isinf(health_factor):
        return "∞"
    return f"{health_factor:.2f}"


def health_status(
    health_factor: float, warning: float = 1.5, critical: float = 1.1
) -> str:
    """Classify a health factor as safe, warning or danger. Unknown (NaN) is danger."""
    if math.isnan(health_factor):
        return HEALTH_DANGER
    if math.isinf(health_factor) or health_factor > warning:
        return HEALTH_SAFE
    if health_factor > critical:
        return HEALTH_WARNING
    return HEALTH_DANGER
