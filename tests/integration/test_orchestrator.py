"""Integration tests for the transaction orchestrator — full flow with mocked ledger."""
from __future__ import annotations

import pytest
import pytest_asyncio

from factories import (
    ACCOUNT_A,
    LENDING_ADDRESS,
    NOW,
    USD,
    USDC_ADDRESS,
    WETH_ADDRESS,
    MemoryAddressStore,
    make_ledger,
    make_oracle,
)
from lending_client.errors import (
    AssetNotFound,
    AuthorizationFailed,
    ContractNotReady,
    InvalidAmount,
    OperationFailed,
    UnknownRecipient,
)
from lending_client.models import Action, AssetConfig, PositionRecord, Receipt
from lending_client.operations import (
    DepositPrivate,
    DepositPublic,
    ExistingPrivateAddress,
    NewPrivateAddress,
    OwnAddress,
    RepayPrivate,
    TransferAuthorization,
    WithdrawPrivate,
    WithdrawPublic,
)
from lending_client.services.orchestrator import TransactionOrchestrator
from lending_client.services.private_addresses import PrivateAddressBook
from lending_client.services.refresh import RefreshCoordinator

NONCE = 777


@pytest.fixture()
def positions() -> dict[str, dict[str, PositionRecord]]:
    return {ACCOUNT_A: {USDC_ADDRESS: PositionRecord(principal_supplied=100 * 10**6)}}


@pytest.fixture()
def ledger(positions):
    ledger = make_ledger(
        positions,
        balances={ACCOUNT_A: {USDC_ADDRESS: 500 * 10**6}},
        total_supplied=10**24,
    )
    ledger.submit.return_value = Receipt(tx_hash="0xtx")
    return ledger


@pytest_asyncio.fixture()
async def coordinator(ledger, asset_configs: dict[str, AssetConfig]) -> RefreshCoordinator:
    coordinator = RefreshCoordinator(
        ledger,
        make_oracle({"feed-usdc": USD, "feed-weth": 2000 * USD}),
        asset_configs,
        market_id=1,
        clock=lambda: NOW,
    )
    await coordinator.set_active_account(ACCOUNT_A)
    await coordinator.refresh_all()
    return coordinator


@pytest.fixture()
def orchestrator(
    ledger, coordinator: RefreshCoordinator, address_store: MemoryAddressStore
) -> TransactionOrchestrator:
    return TransactionOrchestrator(
        ledger,
        coordinator,
        address_store,
        market_id=1,
        lending_address=LENDING_ADDRESS,
        nonce_factory=lambda: NONCE,
    )


def _submitted(ledger):
    operation, authorizations = ledger.submit.call_args[0]
    return operation, authorizations


class TestPublicActions:
    @pytest.mark.asyncio
    async def test_deposit_registers_public_authorization(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        receipt = await orchestrator.deposit("usdc", "1.5")

        assert receipt.tx_hash == "0xtx"
        ledger.set_public_authorization.assert_awaited_once_with(
            TransferAuthorization(
                caller=LENDING_ADDRESS,
                asset=USDC_ADDRESS,
                owner=ACCOUNT_A,
                amount=1_500_000,
                nonce=NONCE,
                private=False,
            )
        )
        ledger.create_private_authorization.assert_not_awaited()
        operation, authorizations = _submitted(ledger)
        assert operation == DepositPublic(
            amount=1_500_000, nonce=NONCE, on_behalf_of=ACCOUNT_A, market_id=1, asset=USDC_ADDRESS
        )
        assert authorizations == []

    @pytest.mark.asyncio
    async def test_withdraw_needs_no_authorization(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        await orchestrator.withdraw("usdc", "10")

        ledger.set_public_authorization.assert_not_awaited()
        ledger.create_private_authorization.assert_not_awaited()
        operation, _ = _submitted(ledger)
        assert operation == WithdrawPublic(
            recipient=ACCOUNT_A, amount=10 * 10**6, market_id=1, asset=USDC_ADDRESS
        )

    @pytest.mark.asyncio
    async def test_success_refreshes_only_affected_asset(
        self,
        orchestrator: TransactionOrchestrator,
        coordinator: RefreshCoordinator,
        ledger,
        positions,
    ) -> None:
        positions[ACCOUNT_A][USDC_ADDRESS] = PositionRecord(principal_supplied=90 * 10**6)
        ledger.get_position.reset_mock()

        await orchestrator.withdraw("usdc", "10")

        ledger.get_position.assert_awaited_once_with(ACCOUNT_A, 1, USDC_ADDRESS)
        asset = coordinator.state.get_asset("usdc")
        assert asset.user_supplied_with_interest == 90 * 10**6

    @pytest.mark.asyncio
    async def test_execute_accepts_action_string(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        await orchestrator.execute("borrow", "weth", "0.01")
        operation, _ = _submitted(ledger)
        assert operation.ACTION is Action.BORROW
        assert operation.asset == WETH_ADDRESS


class TestPrivateActions:
    @pytest.mark.asyncio
    async def test_private_deposit_attaches_witness(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        await orchestrator.deposit("usdc", "2", private=True)

        request = ledger.create_private_authorization.call_args[0][0]
        assert request.private is True
        assert request.action == "transfer_to_public"
        assert request.amount == 2 * 10**6
        ledger.set_public_authorization.assert_not_awaited()

        operation, authorizations = _submitted(ledger)
        assert isinstance(operation, DepositPrivate)
        assert operation.recipient == ACCOUNT_A
        assert operation.secret == 0
        assert operation.nonce == NONCE
        assert authorizations == ["0xwitness"]

    @pytest.mark.asyncio
    async def test_private_repay_from_public_balance(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        await orchestrator.repay("usdc", "1", private=True, from_public_balance=True)

        ledger.create_private_authorization.assert_not_awaited()
        request = ledger.set_public_authorization.call_args[0][0]
        assert request.action == "transfer_in_public"
        operation, authorizations = _submitted(ledger)
        assert isinstance(operation, RepayPrivate)
        assert operation.from_public_balance is True
        assert authorizations == []

    @pytest.mark.asyncio
    async def test_own_address_uses_zero_secret(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        await orchestrator.withdraw("usdc", "1", private=True, recipient=OwnAddress())

        operation, _ = _submitted(ledger)
        assert operation == WithdrawPrivate(
            secret=0, recipient=ACCOUNT_A, amount=10**6, market_id=1, asset=USDC_ADDRESS
        )

    @pytest.mark.asyncio
    async def test_existing_address_uses_stored_secret(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        entry = orchestrator.address_book().add_with_secret(55)

        await orchestrator.withdraw(
            "usdc", "1", private=True, recipient=ExistingPrivateAddress(entry.address)
        )

        operation, _ = _submitted(ledger)
        assert operation.recipient == entry.address
        assert operation.secret == 55

    @pytest.mark.asyncio
    async def test_existing_address_saved_by_another_session(
        self,
        orchestrator: TransactionOrchestrator,
        ledger,
        address_store: MemoryAddressStore,
    ) -> None:
        orchestrator.address_book()
        entry = PrivateAddressBook(address_store, ACCOUNT_A).add_with_secret(91)

        await orchestrator.withdraw(
            "usdc", "1", private=True, recipient=ExistingPrivateAddress(entry.address)
        )

        operation, _ = _submitted(ledger)
        assert operation.secret == 91

    @pytest.mark.asyncio
    async def test_unknown_existing_address_raises(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        with pytest.raises(UnknownRecipient):
            await orchestrator.withdraw(
                "usdc", "1", private=True, recipient=ExistingPrivateAddress("0x1234")
            )
        ledger.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_new_address_is_derived_and_persisted(
        self,
        orchestrator: TransactionOrchestrator,
        ledger,
        address_store: MemoryAddressStore,
    ) -> None:
        await orchestrator.borrow("weth", "0.01", private=True, recipient=NewPrivateAddress())

        stored = address_store.load(ACCOUNT_A)
        assert len(stored) == 1
        operation, _ = _submitted(ledger)
        assert operation.recipient == stored[0].address
        assert operation.secret == stored[0].secret

    @pytest.mark.asyncio
    async def test_public_action_ignores_recipient(
        self, orchestrator: TransactionOrchestrator, ledger, address_store: MemoryAddressStore
    ) -> None:
        await orchestrator.withdraw("usdc", "1", recipient=NewPrivateAddress())

        assert address_store.load(ACCOUNT_A) == []
        operation, _ = _submitted(ledger)
        assert operation.recipient == ACCOUNT_A


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["abc", "-1", "0", "0.0", "", "1.0000001"])
    async def test_invalid_amount(
        self, orchestrator: TransactionOrchestrator, ledger, amount: str
    ) -> None:
        with pytest.raises(InvalidAmount):
            await orchestrator.deposit("usdc", amount)
        ledger.submit.assert_not_awaited()
        ledger.set_public_authorization.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_withdraw_above_limit(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        with pytest.raises(InvalidAmount, match="exceeds the maximum of 100 USDC"):
            await orchestrator.withdraw("usdc", "150")
        ledger.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_withdraw_blocked_while_debt_has_no_price(
        self,
        ledger,
        positions,
        asset_configs: dict[str, AssetConfig],
        address_store: MemoryAddressStore,
    ) -> None:
        positions[ACCOUNT_A][WETH_ADDRESS] = PositionRecord(principal_borrowed=10**16)
        coordinator = RefreshCoordinator(
            ledger, make_oracle({"feed-usdc": USD}), asset_configs, market_id=1, clock=lambda: NOW
        )
        await coordinator.set_active_account(ACCOUNT_A)
        await coordinator.refresh_all()
        orchestrator = TransactionOrchestrator(
            ledger, coordinator, address_store, market_id=1, lending_address=LENDING_ADDRESS
        )

        with pytest.raises(InvalidAmount, match="maximum of 0 USDC"):
            await orchestrator.withdraw("usdc", "1")
        ledger.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_borrow_above_limit(self, orchestrator: TransactionOrchestrator) -> None:
        # $100 collateral at 60% LTV borrows at most $60 of WETH at $2000
        with pytest.raises(InvalidAmount, match="0.03 WETH"):
            await orchestrator.borrow("weth", "0.05")

    @pytest.mark.asyncio
    async def test_limits_can_be_disabled(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        orchestrator.enforce_limits = False
        await orchestrator.withdraw("usdc", "150")
        ledger.submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_asset(self, orchestrator: TransactionOrchestrator) -> None:
        with pytest.raises(AssetNotFound):
            await orchestrator.deposit("dai", "1")

    @pytest.mark.asyncio
    async def test_no_ledger_session(
        self, coordinator: RefreshCoordinator, address_store: MemoryAddressStore
    ) -> None:
        orchestrator = TransactionOrchestrator(
            None, coordinator, address_store, market_id=1, lending_address=LENDING_ADDRESS
        )
        with pytest.raises(ContractNotReady):
            await orchestrator.deposit("usdc", "1")

    @pytest.mark.asyncio
    async def test_no_active_account(
        self, ledger, asset_configs: dict[str, AssetConfig], address_store: MemoryAddressStore
    ) -> None:
        coordinator = RefreshCoordinator(ledger, make_oracle(), asset_configs, market_id=1)
        orchestrator = TransactionOrchestrator(
            ledger, coordinator, address_store, market_id=1, lending_address=LENDING_ADDRESS
        )
        with pytest.raises(ContractNotReady):
            await orchestrator.deposit("usdc", "1")


class TestFailures:
    @pytest.mark.asyncio
    async def test_authorization_failure(
        self, orchestrator: TransactionOrchestrator, ledger
    ) -> None:
        ledger.set_public_authorization.side_effect = RuntimeError("rejected")

        with pytest.raises(AuthorizationFailed, match="transfer_in_public"):
            await orchestrator.deposit("usdc", "1")

        ledger.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_submit_leaves_state_unchanged(
        self,
        orchestrator: TransactionOrchestrator,
        coordinator: RefreshCoordinator,
        ledger,
    ) -> None:
        before = coordinator.state
        cause = RuntimeError("insufficient collateral")
        ledger.submit.side_effect = cause
        ledger.get_position.reset_mock()

        with pytest.raises(OperationFailed) as exc_info:
            await orchestrator.withdraw("usdc", "10")

        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert coordinator.state is before
        assert coordinator.state.position.total_supplied_value == 100 * USD
        ledger.get_position.assert_not_awaited()
        ledger.submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_address_kept_when_submit_fails(
        self,
        orchestrator: TransactionOrchestrator,
        ledger,
        address_store: MemoryAddressStore,
    ) -> None:
        ledger.submit.side_effect = RuntimeError("reverted")

        with pytest.raises(OperationFailed):
            await orchestrator.withdraw(
                "usdc", "1", private=True, recipient=NewPrivateAddress()
            )

        assert len(address_store.load(ACCOUNT_A)) == 1
