"""Lending session — wires configuration to clients, refresh and orchestration."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..chains.ledger import LedgerRpcClient
from ..config import AppConfig
from ..formatters import (
    HEALTH_DANGER,
    HEALTH_SAFE,
    HEALTH_WARNING,
    format_health_factor,
    format_rate,
    format_token_amount,
    format_usd_value,
    health_status,
    parse_token_amount,
)
from ..errors import AssetNotFound
from ..interfaces import LedgerClient, PriceOracle, PrivateAddressStore
from ..models import Action, Asset
from ..oracles import LedgerFeedOracle, PythOracle
from ..storage import JsonFileAddressStore
from .orchestrator import TransactionOrchestrator
from .position_aggregator import preview_health_factor
from .refresh import RefreshCoordinator, RefreshOutcome

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    HEALTH_SAFE: "✅ Healthy",
    HEALTH_WARNING: "⚠️ WARNING",
    HEALTH_DANGER: "🚨 DANGER",
}


def _build_oracle(config: AppConfig, ledger: LedgerRpcClient) -> PriceOracle:
    if config.price_oracle.provider == "pyth":
        return PythOracle(config.price_oracle.pyth)
    return LedgerFeedOracle(ledger)


class LendingSession:
    """One client session: a ledger connection, the active account and its view."""

    def __init__(
        self,
        config: AppConfig,
        ledger: LedgerClient | None = None,
        oracle: PriceOracle | None = None,
        address_store: PrivateAddressStore | None = None,
    ) -> None:
        self._config = config

        if ledger is None or oracle is None:
            rpc_client = LedgerRpcClient(config.ledger)
            ledger = ledger or rpc_client
            oracle = oracle or _build_oracle(config, rpc_client)
        if address_store is None:
            address_store = JsonFileAddressStore(config.storage.private_addresses_path)

        self.refresh = RefreshCoordinator(
            ledger, oracle, config.assets, market_id=config.ledger.market_id
        )
        self.orchestrator = TransactionOrchestrator(
            ledger,
            self.refresh,
            address_store,
            market_id=config.ledger.market_id,
            lending_address=config.ledger.lending_address,
        )

    # ------------------------------------------------------------------
    # Account handling
    # ------------------------------------------------------------------

    def _resolve_account(self, label_or_address: str | None) -> tuple[str, str]:
        """Return (label, address) for a configured label, address or raw address."""
        if label_or_address is None:
            account = self._config.accounts[0]
            return account.label, account.address
        account = self._config.find_account(label_or_address)
        if account is not None:
            return account.label, account.address
        return label_or_address, label_or_address

    def resolve_address(self, label_or_address: str | None = None) -> str:
        return self._resolve_account(label_or_address)[1]

    async def switch_account(self, label_or_address: str | None = None) -> RefreshOutcome:
        """Activate an account and load its positions."""
        label, address = self._resolve_account(label_or_address)
        logger.info("Using account %s (%s)", label, self._format_wallet(address))
        await self.refresh.set_active_account(address)
        return await self.refresh.refresh_all()

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _format_wallet(address: str) -> str:
        if len(address) > 16:
            return f"{address[:10]}...{address[-6:]}"
        return address

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _status(self, health_factor: float) -> str:
        thresholds = self._config.refresh
        return health_status(
            health_factor, thresholds.health_warning, thresholds.health_critical
        )

    @staticmethod
    def _asset_line(asset: Asset) -> str:
        d = asset.decimals
        if not asset.price_valid:
            price = "no price"
        else:
            price = f"${format_usd_value(asset.price)}"
        return (
            f"{asset.ticker or asset.id} · {price}\n"
            f"  Supplied: {format_token_amount(asset.user_supplied_with_interest, d)}"
            f" · Borrowed: {format_token_amount(asset.user_borrowed_with_interest, d)}\n"
            f"  Wallet: {format_token_amount(asset.wallet_balance, d)}"
            f" (private {format_token_amount(asset.wallet_balance_private, d)})\n"
            f"  Supply APR: {format_rate(asset.supply_rate)}"
            f" · Borrow APR: {format_rate(asset.borrow_rate)}"
            f" · Utilization: {format_rate(asset.utilization_rate)}\n"
            f"  Withdrawable: {format_token_amount(asset.withdrawable_amount, d)}"
            f" · Borrowable: ${format_usd_value(asset.borrowable_value_usd)}"
        )

    def build_report(self) -> str:
        """Render the visible state as a text report."""
        state = self.refresh.state
        if state.account is None:
            return "No active account."

        position = state.position
        status = _STATUS_LABELS[self._status(position.health_factor)]
        body = "\n\n".join(self._asset_line(a) for a in state.assets) or "No assets loaded."
        return (
            f"📊 {self._format_wallet(state.account)}\n"
            f"\n"
            f"{status}\n"
            f"\n"
            f"Supplied: ${format_usd_value(position.total_supplied_value)}\n"
            f"Borrowed: ${format_usd_value(position.total_borrowed_value)}\n"
            f"Collateral needed: ${format_usd_value(position.collateral_value_needed)}\n"
            f"HF: {format_health_factor(position.health_factor)}\n"
            f"\n"
            f"{body}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    def preview_line(self, action: Action | str, asset_id: str, amount: str) -> str:
        """Health factor now and after ``action``, e.g. ``'HF: 1.20 → 1.08'``.

        Raises:
            AssetNotFound: ``asset_id`` is not configured.
            InvalidAmount: ``amount`` does not parse under the asset's decimals.
        """
        action = Action(action)
        config = self.refresh.asset_configs.get(asset_id)
        if config is None:
            raise AssetNotFound(asset_id)
        raw = parse_token_amount(amount, config.decimals)

        state = self.refresh.state
        try:
            after = preview_health_factor(state.assets, asset_id, action, raw)
        except AssetNotFound:
            return "HF: not loaded"
        return (
            f"HF: {format_health_factor(state.position.health_factor)}"
            f" → {format_health_factor(after)}"
        )

    def log_position(self) -> None:
        """Log the aggregate position, escalating the level with its risk."""
        state = self.refresh.state
        position = state.position
        status = self._status(position.health_factor)
        level = {
            HEALTH_WARNING: logging.WARNING,
            HEALTH_DANGER: logging.CRITICAL,
        }.get(status, logging.INFO)
        logger.log(
            level,
            "Position — %s · Supplied: $%s  Borrowed: $%s  HF: %s (%s)",
            self._format_wallet(state.account or ""),
            format_usd_value(position.total_supplied_value),
            format_usd_value(position.total_borrowed_value),
            format_health_factor(position.health_factor),
            status,
        )

    # ------------------------------------------------------------------
    # Continuous refresh
    # ------------------------------------------------------------------

    async def run_continuous(self, interval_seconds: int | None = None) -> None:
        """Refresh the active account in a loop, logging every applied state."""
        interval = interval_seconds or self._config.refresh.interval_seconds
        logger.info("Starting continuous refresh (every %d seconds)", interval)

        while True:
            try:
                outcome = await self.refresh.refresh_all()
                if outcome is RefreshOutcome.APPLIED:
                    self.log_position()
                await asyncio.sleep(interval)
            except Exception as e:
                logger.error("Error in refresh loop: %s", e)
                await asyncio.sleep(interval)
