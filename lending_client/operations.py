"""Ledger operation variants and the requests that parameterize them.

Each operation is a frozen dataclass naming its contract method and the exact
positional parameter order the lending contract expects. ``build_operation`` is
the only place that picks a variant for an (action, visibility) pair.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .models import Action

# ---------------------------------------------------------------------------
# Recipient selection for private operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OwnAddress:
    """Send to the caller's own public address with a zero secret."""


@dataclass(frozen=True)
class ExistingPrivateAddress:
    """Send to a previously derived private address, using its stored secret."""

    address: str


@dataclass(frozen=True)
class NewPrivateAddress:
    """Derive and persist a fresh private address, then send to it."""


RecipientChoice = Union[OwnAddress, ExistingPrivateAddress, NewPrivateAddress]


# ---------------------------------------------------------------------------
# Funds-transfer authorization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferAuthorization:
    """Permission for ``caller`` to move ``amount`` of ``asset`` out of ``owner``.

    Scoped to a single-use ``nonce``. ``private`` selects a private witness
    (``transfer_to_public``) over a public registration (``transfer_in_public``).
    """

    caller: str
    asset: str
    owner: str
    amount: int
    nonce: int
    private: bool

    @property
    def action(self) -> str:
        return "transfer_to_public" if self.private else "transfer_in_public"

    def params(self) -> list[Any]:
        return [self.owner, self.caller, str(self.amount), str(self.nonce)]


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DepositPublic:
    ACTION: ClassVar[Action] = Action.DEPOSIT
    METHOD: ClassVar[str] = "deposit_public"

    amount: int
    nonce: int
    on_behalf_of: str
    market_id: int
    asset: str

    def params(self) -> list[Any]:
        return [str(self.amount), str(self.nonce), self.on_behalf_of, self.market_id, self.asset]


@dataclass(frozen=True)
class DepositPrivate:
    ACTION: ClassVar[Action] = Action.DEPOSIT
    METHOD: ClassVar[str] = "deposit_private"

    from_address: str
    amount: int
    nonce: int
    secret: int
    recipient: str
    market_id: int
    asset: str
    from_public_balance: bool = False

    def params(self) -> list[Any]:
        return [
            self.from_address, str(self.amount), str(self.nonce),
            str(self.secret), self.recipient, self.market_id, self.asset,
        ]


@dataclass(frozen=True)
class WithdrawPublic:
    ACTION: ClassVar[Action] = Action.WITHDRAW
    METHOD: ClassVar[str] = "withdraw_public"

    recipient: str
    amount: int
    market_id: int
    asset: str

    def params(self) -> list[Any]:
        return [self.recipient, str(self.amount), self.market_id, self.asset]


@dataclass(frozen=True)
class WithdrawPrivate:
    ACTION: ClassVar[Action] = Action.WITHDRAW
    METHOD: ClassVar[str] = "withdraw_private"

    secret: int
    recipient: str
    amount: int
    market_id: int
    asset: str

    def params(self) -> list[Any]:
        return [str(self.secret), self.recipient, str(self.amount), self.market_id, self.asset]


@dataclass(frozen=True)
class BorrowPublic:
    ACTION: ClassVar[Action] = Action.BORROW
    METHOD: ClassVar[str] = "borrow_public"

    recipient: str
    amount: int
    market_id: int
    asset: str

    def params(self) -> list[Any]:
        return [self.recipient, str(self.amount), self.market_id, self.asset]


@dataclass(frozen=True)
class BorrowPrivate:
    ACTION: ClassVar[Action] = Action.BORROW
    METHOD: ClassVar[str] = "borrow_private"

    secret: int
    recipient: str
    amount: int
    market_id: int
    asset: str

    def params(self) -> list[Any]:
        return [str(self.secret), self.recipient, str(self.amount), self.market_id, self.asset]


@dataclass(frozen=True)
class RepayPublic:
    ACTION: ClassVar[Action] = Action.REPAY
    METHOD: ClassVar[str] = "repay_public"

    amount: int
    nonce: int
    on_behalf_of: str
    market_id: int
    asset: str

    def params(self) -> list[Any]:
        return [str(self.amount), str(self.nonce), self.on_behalf_of, self.market_id, self.asset]


@dataclass(frozen=True)
class RepayPrivate:
    ACTION: ClassVar[Action] = Action.REPAY
    METHOD: ClassVar[str] = "repay_private"

    from_address: str
    amount: int
    nonce: int
    secret: int
    recipient: str
    market_id: int
    asset: str
    from_public_balance: bool = False

    def params(self) -> list[Any]:
        return [
            self.from_address, str(self.amount), str(self.nonce),
            str(self.secret), self.recipient, self.market_id, self.asset,
        ]


Operation = Union[
    DepositPublic, DepositPrivate,
    WithdrawPublic, WithdrawPrivate,
    BorrowPublic, BorrowPrivate,
    RepayPublic, RepayPrivate,
]

# Actions that move funds into protocol custody and need a transfer authorization.
CUSTODY_ACTIONS = frozenset({Action.DEPOSIT, Action.REPAY})


def build_operation(
    action: Action,
    private: bool,
    *,
    account: str,
    amount: int,
    market_id: int,
    asset: str,
    nonce: int = 0,
    recipient: str | None = None,
    secret: int = 0,
    from_public_balance: bool = False,
) -> Operation:
    """Pick and populate the operation variant for ``(action, private)``."""
    to = recipient or account

    if action is Action.DEPOSIT:
        if private:
            return DepositPrivate(
                from_address=account, amount=amount, nonce=nonce, secret=secret,
                recipient=to, market_id=market_id, asset=asset,
                from_public_balance=from_public_balance,
            )
        return DepositPublic(
            amount=amount, nonce=nonce, on_behalf_of=account,
            market_id=market_id, asset=asset,
        )

    if action is Action.WITHDRAW:
        if private:
            return WithdrawPrivate(
                secret=secret, recipient=to, amount=amount,
                market_id=market_id, asset=asset,
            )
        return WithdrawPublic(
            recipient=account, amount=amount, market_id=market_id, asset=asset
        )

    if action is Action.BORROW:
        if private:
            return BorrowPrivate(
                secret=secret, recipient=to, amount=amount,
                market_id=market_id, asset=asset,
            )
        return BorrowPublic(
            recipient=account, amount=amount, market_id=market_id, asset=asset
        )

    if action is Action.REPAY:
        if private:
            return RepayPrivate(
                from_address=account, amount=amount, nonce=nonce, secret=secret,
                recipient=to, market_id=market_id, asset=asset,
                from_public_balance=from_public_balance,
            )
        return RepayPublic(
            amount=amount, nonce=nonce, on_behalf_of=account,
            market_id=market_id, asset=asset,
        )

    raise ValueError(f"Unknown action: {action!r}")
