"""Registry of supported asset markets.

Holds one MarketConfig per asset in insertion order; that order is the
iteration order for global accrual and account valuation. Configuration
inputs arrive already authorized by governance; the registry only enforces
parameter bounds (via MarketConfig validation) and existence.
"""

from __future__ import annotations

from typing import Iterator

from lending_engine.core.errors import MarketAlreadyExists, UnsupportedAsset
from lending_engine.data.constants import DEFAULT_LIQUIDATION_BONUS, WAD
from lending_engine.data.models import MarketConfig, OracleConfig


class MarketRegistry:
    """Ordered collection of market configurations.

    Usage:
        registry = MarketRegistry()
        registry.add_market("WETH", oracle_cfg, decimals=18,
                            collateral_factor=75 * 10**16, now=clock())
        for cfg in registry.supported_markets():
            ...
    """

    def __init__(self) -> None:
        self._markets: dict[str, MarketConfig] = {}

    def __contains__(self, asset: object) -> bool:
        return asset in self._markets

    def __iter__(self) -> Iterator[MarketConfig]:
        return iter(self._markets.values())

    def __len__(self) -> int:
        return len(self._markets)

    def add_market(
        self,
        asset: str,
        oracle: OracleConfig,
        decimals: int,
        collateral_factor: int,
        now: int,
        supply_rate: int = 0,
        borrow_rate: int = 0,
        liquidation_bonus: int = DEFAULT_LIQUIDATION_BONUS,
    ) -> MarketConfig:
        """Register a new market with fresh (1.0) indices.

        Raises:
            MarketAlreadyExists: If the asset is already registered.
            pydantic.ValidationError: If a parameter is out of bounds.
        """
        if asset in self._markets:
            raise MarketAlreadyExists(asset)

        market = MarketConfig(
            asset=asset,
            is_supported=True,
            collateral_factor=collateral_factor,
            oracle=oracle,
            decimals=decimals,
            supply_index=WAD,
            borrow_index=WAD,
            last_update=now,
            supply_rate=supply_rate,
            borrow_rate=borrow_rate,
            liquidation_bonus=liquidation_bonus,
        )
        self._markets[asset] = market
        return market

    def remove_market(self, asset: str) -> MarketConfig:
        """Delete a market. Callers must check for open positions first."""
        if asset not in self._markets:
            raise UnsupportedAsset(asset)
        return self._markets.pop(asset)

    def get(self, asset: str) -> MarketConfig:
        """Return the market for a supported asset.

        Raises:
            UnsupportedAsset: If the asset is unknown or not supported.
        """
        market = self._markets.get(asset)
        if market is None or not market.is_supported:
            raise UnsupportedAsset(asset)
        return market

    def is_supported(self, asset: str) -> bool:
        market = self._markets.get(asset)
        return market is not None and market.is_supported

    def supported_markets(self) -> list[MarketConfig]:
        """Supported markets in registry order."""
        return [m for m in self._markets.values() if m.is_supported]

    def supported_assets(self) -> list[str]:
        return [m.asset for m in self.supported_markets()]

    def set_collateral_factor(self, asset: str, collateral_factor: int) -> MarketConfig:
        market = self.get(asset)
        market.collateral_factor = collateral_factor
        return market

    def set_interest_rates(self, asset: str, supply_rate: int, borrow_rate: int) -> MarketConfig:
        market = self.get(asset)
        market.supply_rate = supply_rate
        market.borrow_rate = borrow_rate
        return market

    def set_liquidation_bonus(self, asset: str, liquidation_bonus: int) -> MarketConfig:
        market = self.get(asset)
        market.liquidation_bonus = liquidation_bonus
        return market

    def snapshot(self) -> dict[str, MarketConfig]:
        """Copy of all market state, for rollback."""
        return {asset: m.model_copy() for asset, m in self._markets.items()}

    def restore(self, snapshot: dict[str, MarketConfig]) -> None:
        """Reinstate a snapshot, keeping existing MarketConfig objects in place."""
        restored: dict[str, MarketConfig] = {}
        for asset, saved in snapshot.items():
            current = self._markets.get(asset)
            if current is None:
                current = saved.model_copy()
            else:
                for name in MarketConfig.model_fields:
                    setattr(current, name, getattr(saved, name))
            restored[asset] = current
        self._markets = restored
