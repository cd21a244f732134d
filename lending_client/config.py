"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import AssetConfig
from .precision import (
    INTEREST_PRECISION,
    INTEREST_PRECISION_FACTOR,
    PERCENTAGE_PRECISION,
    PERCENTAGE_PRECISION_FACTOR,
    to_fixed,
)

logger = logging.getLogger(__name__)

ORACLE_PROVIDERS = ("pyth", "ledger")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    lending_address: str = ""
    market_id: int = 1


@dataclass(frozen=True)
class AccountConfig:
    label: str = ""
    address: str = ""


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "ledger"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class StorageConfig:
    private_addresses_path: str = "private_addresses.json"


@dataclass(frozen=True)
class RefreshConfig:
    interval_seconds: int = 30
    health_warning: float = 1.5
    health_critical: float = 1.1


@dataclass(frozen=True)
class AppConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    accounts: tuple[AccountConfig, ...] = ()
    assets: dict[str, AssetConfig] = field(default_factory=dict)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)

    def find_account(self, label_or_address: str) -> AccountConfig | None:
        for account in self.accounts:
            if label_or_address in (account.label, account.address):
                return account
        return None


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _fixed(value: Any, precision: int) -> int:
    """Integers are taken as already scaled; decimals (0.6, "0.75") are scaled."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return to_fixed(value, precision)


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        lending_address=raw.get("lending_address", ""),
        market_id=int(raw.get("market_id", 1)),
    )


def _build_accounts(raw: list[dict[str, Any]]) -> tuple[AccountConfig, ...]:
    return tuple(
        AccountConfig(label=a.get("label", ""), address=a.get("address", ""))
        for a in raw
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetConfig]:
    assets: dict[str, AssetConfig] = {}
    for asset_id, cfg in raw.items():
        assets[asset_id] = AssetConfig(
            asset_id=asset_id,
            address=cfg.get("address", asset_id),
            name=cfg.get("name", ""),
            ticker=cfg.get("ticker", ""),
            decimals=int(cfg.get("decimals", 9)),
            oracle=cfg.get("oracle", ""),
            loan_to_value=_fixed(cfg.get("loan_to_value", 0), PERCENTAGE_PRECISION),
            is_borrowable=bool(cfg.get("is_borrowable", True)),
            deposit_cap=int(cfg.get("deposit_cap", 0)),
            optimal_utilization_rate=_fixed(
                cfg.get("optimal_utilization_rate", 0), INTEREST_PRECISION
            ),
            under_optimal_slope=_fixed(cfg.get("under_optimal_slope", 0), INTEREST_PRECISION),
            over_optimal_slope=_fixed(cfg.get("over_optimal_slope", 0), INTEREST_PRECISION),
        )
    return assets


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "ledger"),
        pyth=PythConfig(hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url)),
    )


def _build_storage(raw: dict[str, Any]) -> StorageConfig:
    return StorageConfig(
        private_addresses_path=raw.get(
            "private_addresses_path", StorageConfig.private_addresses_path
        ),
    )


def _build_refresh(raw: dict[str, Any]) -> RefreshConfig:
    return RefreshConfig(
        interval_seconds=int(raw.get("interval_seconds", 30)),
        health_warning=float(raw.get("health_warning", 1.5)),
        health_critical=float(raw.get("health_critical", 1.1)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        ledger=_build_ledger(raw.get("ledger", {})),
        accounts=_build_accounts(raw.get("accounts", [])),
        assets=_build_assets(raw.get("assets", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        storage=_build_storage(raw.get("storage", {})),
        refresh=_build_refresh(raw.get("refresh", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.ledger.rpc_endpoints:
        raise ValueError("At least one ledger RPC endpoint must be configured")
    if not cfg.ledger.lending_address:
        raise ValueError("Ledger section has no lending_address")

    if not cfg.accounts:
        raise ValueError("At least one account must be configured")
    for account in cfg.accounts:
        if not account.address:
            raise ValueError(f"Account '{account.label}' has no address")

    if not cfg.assets:
        raise ValueError("At least one asset must be configured")
    for asset_id, asset in cfg.assets.items():
        if asset.decimals < 0:
            raise ValueError(f"Asset '{asset_id}' has negative decimals")
        if not 0 < asset.loan_to_value <= PERCENTAGE_PRECISION_FACTOR:
            raise ValueError(
                f"Asset '{asset_id}' loan_to_value must be in (0, 100%]"
            )
        if not 0 < asset.optimal_utilization_rate < INTEREST_PRECISION_FACTOR:
            raise ValueError(
                f"Asset '{asset_id}' optimal_utilization_rate must be strictly between 0 and 1"
            )
        if asset.under_optimal_slope < 0 or asset.over_optimal_slope < 0:
            raise ValueError(f"Asset '{asset_id}' has a negative rate slope")
        if not asset.oracle:
            raise ValueError(f"Asset '{asset_id}' has no oracle")

    if cfg.price_oracle.provider not in ORACLE_PROVIDERS:
        raise ValueError(
            f"Unknown price oracle provider '{cfg.price_oracle.provider}'"
        )
