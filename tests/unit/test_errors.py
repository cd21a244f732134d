"""Unit tests for the error taxonomy and user-facing messages."""
from __future__ import annotations

from lending_client.errors import (
    AssetNotFound,
    AuthorizationFailed,
    ContractNotReady,
    InvalidAmount,
    LendingError,
    OperationFailed,
    UnknownRecipient,
    describe_error,
)


class TestErrorTypes:
    def test_hierarchy(self) -> None:
        assert issubclass(InvalidAmount, ValueError)
        assert issubclass(AssetNotFound, LookupError)
        for kind in (InvalidAmount, AssetNotFound, ContractNotReady, AuthorizationFailed,
                     OperationFailed, UnknownRecipient):
            assert issubclass(kind, LendingError)

    def test_asset_not_found_message(self) -> None:
        err = AssetNotFound("usdc")
        assert err.asset_id == "usdc"
        assert str(err) == "Asset not found: usdc"

    def test_operation_failed_keeps_cause(self) -> None:
        cause = RuntimeError("reverted")
        err = OperationFailed("deposit_public failed", cause=cause)
        assert err.cause is cause


class TestDescribeError:
    def test_invalid_amount(self) -> None:
        assert describe_error(InvalidAmount("abc")) == "Please enter a valid amount: abc"

    def test_operation_failed_shows_cause(self) -> None:
        err = OperationFailed("x", cause=RuntimeError("insufficient collateral"))
        assert describe_error(err) == "Transaction failed. insufficient collateral"

    def test_unknown_error(self) -> None:
        assert describe_error(KeyError("boom")) == "Transaction failed. Please try again."
