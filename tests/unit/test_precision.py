"""Unit tests for fixed-point conversions."""
from __future__ import annotations

import pytest

from lending_client.precision import (
    PERCENTAGE_PRECISION_FACTOR,
    PRICE_PRECISION_FACTOR,
    apply_ltv,
    to_fixed,
    token_to_usd,
    usd_to_token,
)


class TestTokenToUsd:
    def test_six_decimal_token(self) -> None:
        # 1.5 tokens at $2
        assert token_to_usd(1_500_000, 6, 2 * PRICE_PRECISION_FACTOR) == 3 * PRICE_PRECISION_FACTOR

    def test_eighteen_decimal_token(self) -> None:
        assert token_to_usd(10**18, 18, 3000 * PRICE_PRECISION_FACTOR) == 3000 * PRICE_PRECISION_FACTOR

    def test_floors(self) -> None:
        # 1 wei at $1 is below one unit of USD precision
        assert token_to_usd(1, 18, PRICE_PRECISION_FACTOR) == 0

    def test_zero_price(self) -> None:
        assert token_to_usd(1_000_000, 6, 0) == 0


class TestUsdToToken:
    def test_inverse_of_token_to_usd(self) -> None:
        assert usd_to_token(3 * PRICE_PRECISION_FACTOR, 6, 2 * PRICE_PRECISION_FACTOR) == 1_500_000

    def test_zero_price_raises(self) -> None:
        with pytest.raises(ValueError, match="price 0"):
            usd_to_token(PRICE_PRECISION_FACTOR, 6, 0)

    @pytest.mark.parametrize(
        "amount,decimals,price",
        [
            (1, 6, 999_999_999),
            (123_456_789, 6, 1_234_567_890),
            (10**18 + 7, 18, 3_141_592_653_589),
            (42, 0, 7),
        ],
    )
    def test_round_trip_within_one_unit(self, amount: int, decimals: int, price: int) -> None:
        back = usd_to_token(token_to_usd(amount, decimals, price), decimals, price)
        assert back <= amount
        # one unit of the smaller denomination, expressed in token units
        tolerance = max(1, 10**decimals // price + 1)
        assert amount - back <= tolerance


class TestApplyLtv:
    def test_seventy_five_percent(self) -> None:
        assert apply_ltv(100 * PRICE_PRECISION_FACTOR, 7500) == 75 * PRICE_PRECISION_FACTOR

    def test_full_ltv_is_identity(self) -> None:
        assert apply_ltv(12345, PERCENTAGE_PRECISION_FACTOR) == 12345

    def test_zero_ltv(self) -> None:
        assert apply_ltv(12345, 0) == 0


class TestToFixed:
    def test_float_has_no_binary_artifacts(self) -> None:
        assert to_fixed(0.7, 4) == 7000

    def test_string_input(self) -> None:
        assert to_fixed("0.6", 9) == 600_000_000
