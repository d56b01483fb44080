"""Account valuation and health factor.

Health Factor = Sum(Deposit_i * Price_i * CollateralFactor_i) / Sum(Debt_j * Price_j)

All values are 18-decimal USD. Balances are reconstructed from scaled
positions at the current indices and normalized from each asset's native
decimals. Assets with a zero balance are never priced.

Prices come from the PriceOracle unless an explicit per-asset override map is
given, which powers the what-if helpers (price shocks, liquidation price
search) without touching feeds or ledger.
"""

from __future__ import annotations

from typing import Mapping

from lending_engine.core.fixed_point import mul_div, normalize
from lending_engine.data.constants import (
    BPS,
    HEALTH_FACTOR_INFINITE,
    HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
    WAD,
)
from lending_engine.data.models import AccountSnapshot, MarketConfig
from lending_engine.markets.ledger import PositionLedger
from lending_engine.markets.registry import MarketRegistry
from lending_engine.oracle.price_oracle import PriceOracle

PriceMap = Mapping[str, int]


def health_factor_from_values(collateral_value: int, debt_value: int) -> int:
    """Health factor (WAD) from risk-weighted collateral and debt values."""
    if debt_value == 0:
        return HEALTH_FACTOR_INFINITE
    return mul_div(collateral_value, WAD, debt_value)


class RiskEngine:
    """Value accounts and test solvency.

    Usage:
        risk = RiskEngine(registry, ledger, oracle)
        hf = risk.health_factor("0xabc")
        snapshot = risk.account_snapshot("0xabc")
    """

    def __init__(
        self,
        registry: MarketRegistry,
        ledger: PositionLedger,
        oracle: PriceOracle,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.oracle = oracle

    def price_of(self, market: MarketConfig, prices: PriceMap | None = None) -> int:
        """18-decimal USD price for a market, honouring overrides."""
        if prices is not None and market.asset in prices:
            return prices[market.asset]
        return self.oracle.resolve_price(market.oracle)

    def value_usd(self, market: MarketConfig, amount: int, prices: PriceMap | None = None) -> int:
        """USD value of a raw amount of the market's asset."""
        if amount == 0:
            return 0
        return mul_div(normalize(amount, market.decimals), self.price_of(market, prices), WAD)

    def collateral_value_usd(self, account: str, prices: PriceMap | None = None) -> int:
        """Risk-weighted USD value of an account's deposits."""
        total = 0
        for market in self.registry.supported_markets():
            balance = self.ledger.deposit_balance(account, market.asset, market.supply_index)
            if balance == 0:
                continue
            value = self.value_usd(market, balance, prices)
            total += mul_div(value, market.collateral_factor, WAD)
        return total

    def debt_value_usd(self, account: str, prices: PriceMap | None = None) -> int:
        """USD value of an account's outstanding debt."""
        total = 0
        for market in self.registry.supported_markets():
            balance = self.ledger.debt_balance(account, market.asset, market.borrow_index)
            if balance == 0:
                continue
            total += self.value_usd(market, balance, prices)
        return total

    def health_factor(self, account: str, prices: PriceMap | None = None) -> int:
        """Health factor at WAD scale; HEALTH_FACTOR_INFINITE without debt.

        Debt is valued first so debt-free accounts never price their collateral.
        """
        debt = self.debt_value_usd(account, prices)
        if debt == 0:
            return HEALTH_FACTOR_INFINITE
        return health_factor_from_values(self.collateral_value_usd(account, prices), debt)

    def account_snapshot(self, account: str, prices: PriceMap | None = None) -> AccountSnapshot:
        """Collateral, debt, borrowing headroom and health factor together."""
        collateral = self.collateral_value_usd(account, prices)
        debt = self.debt_value_usd(account, prices)
        if debt == 0:
            available = collateral
        else:
            available = max(collateral - debt, 0)
        return AccountSnapshot(
            account=account,
            collateral_value_usd=collateral,
            debt_value_usd=debt,
            available_to_borrow_usd=available,
            health_factor=health_factor_from_values(collateral, debt),
        )

    def is_liquidatable(self, account: str, prices: PriceMap | None = None) -> bool:
        return self.health_factor(account, prices) < HEALTH_FACTOR_LIQUIDATION_THRESHOLD

    def current_prices(self, assets: list[str] | None = None) -> dict[str, int]:
        """Resolve prices for the given (default: all supported) assets."""
        markets = self.registry.supported_markets()
        if assets is not None:
            markets = [m for m in markets if m.asset in assets]
        return {m.asset: self.oracle.resolve_price(m.oracle) for m in markets}

    def held_assets(self, account: str) -> list[str]:
        """Supported assets in which the account holds a deposit or debt."""
        return [
            m.asset
            for m in self.registry.supported_markets()
            if self.ledger.scaled_deposit(account, m.asset) > 0
            or self.ledger.scaled_debt(account, m.asset) > 0
        ]

    def simulate_price_change(self, account: str, asset: str, change_bps: int) -> int:
        """Health factor after moving one asset's price by change_bps.

        Args:
            account: Account to evaluate.
            asset: Asset whose price moves.
            change_bps: Signed change in basis points (e.g. -5000 for -50%).

        Returns:
            New health factor at WAD scale.
        """
        if change_bps < -BPS:
            raise ValueError(f"Price cannot fall more than 100%, got {change_bps} bps")
        prices = self.current_prices(self.held_assets(account))
        if asset in prices:
            prices[asset] = mul_div(prices[asset], BPS + change_bps, BPS)
        return self.health_factor(account, prices)

    def find_liquidation_price(
        self,
        account: str,
        asset: str,
        is_collateral: bool = True,
        precision: int = 10**12,
    ) -> int | None:
        """Price of asset at which the account crosses into liquidation.

        Binary search over an override price with all other prices held at
        their current values.

        Args:
            account: Account to evaluate.
            asset: Asset whose price is searched.
            is_collateral: True when a price fall triggers liquidation,
                False when a price rise (debt asset) does.
            precision: Search tolerance in 18-decimal USD.

        Returns:
            Boundary price (18-decimal USD), the current price if already
            liquidatable, or None if the account has no debt or the asset is
            not held.
        """
        prices = self.current_prices(self.held_assets(account))
        if asset not in prices:
            return None
        current = prices[asset]

        current_hf = self.health_factor(account, prices)
        if current_hf == HEALTH_FACTOR_INFINITE:
            return None
        if current_hf < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            return current

        if is_collateral:
            # Other collateral may keep the account solvent at any price
            floor_hf = self.health_factor(account, {**prices, asset: 0})
            if floor_hf >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
                return None
            low, high = 0, current
        else:
            low, high = current, current
            # Grow the upper bound until the position breaks
            while True:
                high *= 2
                hf = self.health_factor(account, {**prices, asset: high})
                if hf < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
                    break
                if high > current * 10**12:
                    return None

        while high - low > precision:
            mid = (low + high) // 2
            hf = self.health_factor(account, {**prices, asset: mid})
            if hf < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
                if is_collateral:
                    low = mid
                else:
                    high = mid
            else:
                if is_collateral:
                    high = mid
                else:
                    low = mid

        return (low + high) // 2
