"""Transaction orchestration for deposit, withdraw, borrow and repay.

For one request the orchestrator:

1. parses and validates the amount against the asset's decimals and limits,
2. resolves the private recipient and its secret,
3. obtains a single-use transfer authorization when funds move into custody,
4. submits exactly one operation and waits for it,
5. re-fetches only the affected asset on success.

A failure at any step raises and leaves the visible state untouched.
"""
from __future__ import annotations

import logging
from typing import Callable

from ..errors import (
    AssetNotFound,
    AuthorizationFailed,
    ContractNotReady,
    InvalidAmount,
    OperationFailed,
)
from ..formatters import format_token_amount, parse_token_amount
from ..interfaces import LedgerClient, PrivateAddressStore
from ..models import Action, Receipt
from ..operations import (
    CUSTODY_ACTIONS,
    ExistingPrivateAddress,
    NewPrivateAddress,
    OwnAddress,
    RecipientChoice,
    TransferAuthorization,
    build_operation,
)
from ..privacy import generate_secret, same_address
from .position_aggregator import max_amount
from .private_addresses import PrivateAddressBook
from .refresh import RefreshCoordinator

logger = logging.getLogger(__name__)

LIMITED_ACTIONS = frozenset({Action.WITHDRAW, Action.BORROW})


class TransactionOrchestrator:
    """Turns a user request into one authorized, submitted ledger operation."""

    def __init__(
        self,
        ledger: LedgerClient | None,
        refresh: RefreshCoordinator,
        address_store: PrivateAddressStore,
        *,
        market_id: int,
        lending_address: str,
        enforce_limits: bool = True,
        nonce_factory: Callable[[], int] = generate_secret,
    ) -> None:
        self.ledger = ledger
        self.refresh = refresh
        self.address_store = address_store
        self.market_id = market_id
        self.lending_address = lending_address
        self.enforce_limits = enforce_limits
        self._nonce_factory = nonce_factory
        self._books: dict[str, PrivateAddressBook] = {}

    def address_book(self, owner: str | None = None) -> PrivateAddressBook:
        """Private address book of ``owner``, the active account by default."""
        owner = owner or self.refresh.active_account
        if not owner:
            raise ContractNotReady("No active account")
        key = owner.lower()
        if key not in self._books:
            self._books[key] = PrivateAddressBook(self.address_store, owner)
        return self._books[key]

    # ------------------------------------------------------------------
    # Resolution steps
    # ------------------------------------------------------------------

    def _require_session(self) -> str:
        account = self.refresh.active_account
        if self.ledger is None or not account or not self.lending_address:
            raise ContractNotReady("Lending contract is not initialized")
        return account

    def _parse_amount(self, action: Action, asset_id: str, amount: str, private: bool) -> int:
        config = self.refresh.asset_configs.get(asset_id)
        if config is None:
            raise AssetNotFound(asset_id)

        raw = parse_token_amount(amount, config.decimals)
        if raw <= 0:
            raise InvalidAmount("Amount must be greater than zero")

        if self.enforce_limits and action in LIMITED_ACTIONS:
            try:
                asset = self.refresh.state.get_asset(asset_id)
            except AssetNotFound:
                raise ContractNotReady(
                    f"Positions for {config.ticker or asset_id} are not loaded yet"
                ) from None
            limit = max_amount(asset, action, private)
            if raw > limit:
                raise InvalidAmount(
                    f"{action.value} of {amount} exceeds the maximum of "
                    f"{format_token_amount(limit, config.decimals)} {config.ticker}"
                )
        return raw

    def _resolve_recipient(
        self, account: str, private: bool, recipient: RecipientChoice
    ) -> tuple[str, int]:
        """Return (recipient address, secret) for the operation."""
        if not private or isinstance(recipient, OwnAddress):
            return account, 0

        book = self.address_book(account)
        if isinstance(recipient, ExistingPrivateAddress):
            # the store may have been written by another session since the book loaded
            book.reload()
            return recipient.address, book.secret_for(recipient.address)
        if isinstance(recipient, NewPrivateAddress):
            entry = book.add_new()
            secret = 0 if same_address(entry.address, account) else entry.secret
            return entry.address, secret
        raise ValueError(f"Unknown recipient choice: {recipient!r}")

    async def _authorize(
        self, account: str, asset: str, amount: int, nonce: int, private: bool
    ) -> list[str]:
        """Grant the lending contract a transfer of ``amount``; return witnesses."""
        request = TransferAuthorization(
            caller=self.lending_address,
            asset=asset,
            owner=account,
            amount=amount,
            nonce=nonce,
            private=private,
        )
        try:
            if private:
                return [await self.ledger.create_private_authorization(request)]
            await self.ledger.set_public_authorization(request)
            return []
        except Exception as e:
            raise AuthorizationFailed(f"{request.action} authorization failed: {e}") from e

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        action: Action | str,
        asset_id: str,
        amount: str,
        private: bool = False,
        recipient: RecipientChoice | None = None,
        from_public_balance: bool = False,
    ) -> Receipt:
        """Run one lending action end to end and return its receipt.

        Raises:
            ContractNotReady: no ledger session or active account.
            AssetNotFound: ``asset_id`` is not configured.
            InvalidAmount: unparsable, zero or above the action's limit.
            UnknownRecipient: an existing private recipient has no stored secret.
            AuthorizationFailed: the transfer authorization was not granted.
            OperationFailed: the ledger rejected the operation.
        """
        action = Action(action)
        account = self._require_session()
        raw_amount = self._parse_amount(action, asset_id, amount, private)
        config = self.refresh.asset_configs[asset_id]

        to, secret = self._resolve_recipient(account, private, recipient or OwnAddress())

        nonce = 0
        authorizations: list[str] = []
        if action in CUSTODY_ACTIONS:
            nonce = self._nonce_factory()
            authorizations = await self._authorize(
                account, config.address, raw_amount, nonce,
                private=private and not from_public_balance,
            )

        operation = build_operation(
            action,
            private,
            account=account,
            amount=raw_amount,
            market_id=self.market_id,
            asset=config.address,
            nonce=nonce,
            recipient=to,
            secret=secret,
            from_public_balance=from_public_balance,
        )

        logger.info(
            "Submitting %s of %s %s for %s",
            operation.METHOD, amount, config.ticker or asset_id, account,
        )
        try:
            receipt = await self.ledger.submit(operation, authorizations)
        except Exception as e:
            raise OperationFailed(f"{operation.METHOD} failed: {e}", cause=e) from e

        logger.info("%s confirmed in %s", operation.METHOD, receipt.tx_hash)
        await self.refresh.refresh_asset(asset_id)
        return receipt

    async def deposit(self, asset_id: str, amount: str, **kwargs) -> Receipt:
        return await self.execute(Action.DEPOSIT, asset_id, amount, **kwargs)

    async def withdraw(self, asset_id: str, amount: str, **kwargs) -> Receipt:
        return await self.execute(Action.WITHDRAW, asset_id, amount, **kwargs)

    async def borrow(self, asset_id: str, amount: str, **kwargs) -> Receipt:
        return await self.execute(Action.BORROW, asset_id, amount, **kwargs)

    async def repay(self, asset_id: str, amount: str, **kwargs) -> Receipt:
        return await self.execute(Action.REPAY, asset_id, amount, **kwargs)
