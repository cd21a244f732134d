"""Error taxonomy for the lending client."""
from __future__ import annotations


class LendingError(Exception):
    """Base class for all lending client errors."""


class InvalidAmount(LendingError, ValueError):
    """Amount input is unparsable, negative, zero or above the allowed limit."""


class AssetNotFound(LendingError, LookupError):
    """The referenced asset id is not part of the configured asset table."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Asset not found: {asset_id}")
        self.asset_id = asset_id


class ContractNotReady(LendingError):
    """An operation was requested before the ledger session was initialized."""


class AuthorizationFailed(LendingError):
    """The funds-transfer pre-authorization was rejected or not granted."""


class OperationFailed(LendingError):
    """The ledger rejected a submitted operation.

    The original exception is available as ``cause`` and is also chained as
    ``__cause__``.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class UnknownRecipient(LendingError, LookupError):
    """A private recipient was selected that has no stored secret."""


class StaleResult(LendingError):
    """A refresh result belongs to a superseded epoch. Never shown to users."""


_MESSAGES: dict[type[LendingError], str] = {
    InvalidAmount: "Please enter a valid amount",
    AssetNotFound: "Asset not found",
    ContractNotReady: "Lending contract is not ready",
    AuthorizationFailed: "Transfer authorization was not granted",
    UnknownRecipient: "Unknown private recipient",
}


def describe_error(exc: BaseException) -> str:
    """Return the user-facing message for a failed transaction."""
    for kind, message in _MESSAGES.items():
        if isinstance(exc, kind):
            return f"{message}: {exc}"
    if isinstance(exc, OperationFailed):
        cause = exc.cause if exc.cause is not None else exc
        return f"Transaction failed. {cause}"
    return "Transaction failed. Please try again."
