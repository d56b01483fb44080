"""Pytest configuration and fixtures for lending engine tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from lending_engine.core.clock import ManualClock
from lending_engine.data.constants import WAD
from lending_engine.data.models import OracleConfig
from lending_engine.engine.governance import Governance
from lending_engine.engine.operations import LendingEngine
from lending_engine.engine.transfer import InMemoryAssetTransfer
from lending_engine.oracle.feeds import ManualFallbackFeed, ManualPrimaryFeed

SETTINGS_ENV_VARS = (
    "LENDING_MAX_PRIMARY_DELAY",
    "LENDING_MAX_FALLBACK_AGE",
    "LENDING_MIN_HEALTH_FACTOR",
    "LENDING_SECONDS_PER_YEAR",
    "LENDING_LOG_DIR",
)

MANAGER = "0xmanager"


class PriceBoard:
    """Manual primary/fallback feed pair per asset, published at clock time."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.primary: dict[str, ManualPrimaryFeed] = {}
        self.fallback: dict[str, ManualFallbackFeed] = {}
        self._last: dict[str, int] = {}

    def oracle(self, asset: str, price_8dec: int) -> OracleConfig:
        """Create feeds for asset and publish an initial 8-decimal price."""
        self.primary[asset] = ManualPrimaryFeed(decimals=8)
        self.fallback[asset] = ManualFallbackFeed()
        self.set_price(asset, price_8dec)
        return OracleConfig(
            primary=self.primary[asset],
            fallback=self.fallback[asset],
            fallback_asset_id=asset,
        )

    def set_price(self, asset: str, price_8dec: int) -> None:
        self._last[asset] = price_8dec
        self.primary[asset].set_price(price_8dec, updated_at=self.clock())

    def refresh(self) -> None:
        """Republish every last price at the current time."""
        for asset, price in self._last.items():
            self.set_price(asset, price)


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep engine settings independent of the developer's environment."""
    for name in SETTINGS_ENV_VARS:
        # setenv first so teardown also removes values written by load_dotenv
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def temp_log_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for journal files."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def prices(clock: ManualClock) -> PriceBoard:
    return PriceBoard(clock)


@pytest.fixture
def transfer() -> InMemoryAssetTransfer:
    return InMemoryAssetTransfer()


@pytest.fixture
def governance() -> Governance:
    return Governance(fund_managers=[MANAGER])


@pytest.fixture
def engine(
    clock: ManualClock,
    prices: PriceBoard,
    transfer: InMemoryAssetTransfer,
    governance: Governance,
) -> LendingEngine:
    """Engine with two $1, 18-decimal markets A and B (collateral factor 0.75)."""
    engine = LendingEngine(transfer, governance=governance, clock=clock)
    engine.add_market(
        "A",
        prices.oracle("A", 1 * 10**8),
        decimals=18,
        collateral_factor=75 * WAD // 100,
    )
    engine.add_market(
        "B",
        prices.oracle("B", 1 * 10**8),
        decimals=18,
        collateral_factor=75 * WAD // 100,
    )
    return engine
