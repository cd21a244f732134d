"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from factories import (
    ACCOUNT_A,
    ACCOUNT_B,
    LENDING_ADDRESS,
    USDC_ADDRESS,
    WETH_ADDRESS,
    MemoryAddressStore,
    make_asset_config,
)
from lending_client.config import (
    AccountConfig,
    AppConfig,
    LedgerConfig,
    PriceOracleConfig,
    RefreshConfig,
    StorageConfig,
)
from lending_client.models import AssetConfig


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def usdc_config() -> AssetConfig:
    return make_asset_config("usdc", decimals=6, loan_to_value=6000, address=USDC_ADDRESS)


@pytest.fixture()
def weth_config() -> AssetConfig:
    return make_asset_config("weth", decimals=18, loan_to_value=6000, address=WETH_ADDRESS)


@pytest.fixture()
def asset_configs(usdc_config: AssetConfig, weth_config: AssetConfig) -> dict[str, AssetConfig]:
    return {"usdc": usdc_config, "weth": weth_config}


@pytest.fixture()
def sample_ledger_config() -> LedgerConfig:
    return LedgerConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
        lending_address=LENDING_ADDRESS,
        market_id=1,
    )


@pytest.fixture()
def sample_app_config(
    sample_ledger_config: LedgerConfig,
    asset_configs: dict[str, AssetConfig],
    tmp_path: Path,
) -> AppConfig:
    return AppConfig(
        ledger=sample_ledger_config,
        accounts=(
            AccountConfig(label="alice", address=ACCOUNT_A),
            AccountConfig(label="bob", address=ACCOUNT_B),
        ),
        assets=asset_configs,
        price_oracle=PriceOracleConfig(provider="ledger"),
        storage=StorageConfig(private_addresses_path=str(tmp_path / "addresses.json")),
        refresh=RefreshConfig(interval_seconds=5, health_warning=1.5, health_critical=1.1),
    )


@pytest.fixture()
def address_store() -> MemoryAddressStore:
    return MemoryAddressStore()


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    ledger:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
      lending_address: "0x1c1c"
      market_id: 2
    accounts:
      - label: alice
        address: "0x0a0a"
    assets:
      usdc:
        name: USD Coin
        ticker: USDC
        decimals: 6
        oracle: "feed-usdc"
        loan_to_value: 0.75
        is_borrowable: true
        optimal_utilization_rate: 0.6
        under_optimal_slope: 0.04
        over_optimal_slope: 0.6
      weth:
        address: "0xweth"
        ticker: WETH
        decimals: 18
        oracle: "feed-weth"
        loan_to_value: 6000
        optimal_utilization_rate: 800000000
        under_optimal_slope: 30000000
        over_optimal_slope: 1000000000
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
    storage:
      private_addresses_path: "addresses.json"
    refresh:
      interval_seconds: 15
      health_warning: 1.4
      health_critical: 1.05
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
