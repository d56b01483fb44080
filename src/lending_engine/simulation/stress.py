"""Monte Carlo price-shock stress testing.

Implements the stress loop:
1. Resolve current prices for every supported asset
2. In each iteration, draw a log-normal multiplicative shock per asset
   (optionally correlated through a common market factor)
3. Reprice every account through RiskEngine with the shocked prices
4. Track the fraction of accounts that become liquidatable

Shocks never touch feeds or the ledger. Runs are deterministic for a seed.
"""

from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

import numpy as np
from pydantic import BaseModel, Field

from lending_engine.core.errors import SettingsError
from lending_engine.core.fixed_point import mul_div
from lending_engine.core.logging import EngineJournal
from lending_engine.data.constants import (
    HEALTH_FACTOR_INFINITE,
    HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
    WAD,
)
from lending_engine.markets.risk import RiskEngine

# Shock multipliers are applied with 1e9 precision
_SHOCK_SCALE = 10**9


@dataclass
class StressConfig:
    """Configuration for a stress run."""

    num_iterations: int = 1000
    base_seed: int = 42

    # Log-normal volatility over the stress horizon
    default_volatility: float = 0.20
    asset_volatility: dict[str, float] = field(default_factory=dict)

    # Weight of the common market factor (0 = independent, 1 = fully correlated)
    market_correlation: float = 0.5

    # Bootstrap CI parameters
    bootstrap_samples: int = 1000
    confidence_level: float = 0.95

    def __post_init__(self) -> None:
        if self.num_iterations < 1:
            raise SettingsError(f"num_iterations must be at least 1, got {self.num_iterations}")
        if self.bootstrap_samples < 1:
            raise SettingsError(
                f"bootstrap_samples must be at least 1, got {self.bootstrap_samples}"
            )
        # Shocks weight the factors by sqrt(rho) and sqrt(1 - rho)
        if not 0.0 <= self.market_correlation <= 1.0:
            raise SettingsError(
                f"market_correlation must be within [0, 1], got {self.market_correlation}"
            )
        if not 0.0 < self.confidence_level < 1.0:
            raise SettingsError(
                f"confidence_level must be within (0, 1), got {self.confidence_level}"
            )
        volatilities = {"default": self.default_volatility, **self.asset_volatility}
        for asset, volatility in volatilities.items():
            if not math.isfinite(volatility) or volatility < 0:
                raise SettingsError(
                    f"volatility for {asset} must be non-negative, got {volatility}"
                )

    def volatility_for(self, asset: str) -> float:
        return self.asset_volatility.get(asset, self.default_volatility)


class StressResult(BaseModel):
    """Aggregated outcome of a stress run."""

    stress_id: str
    num_iterations: int = Field(ge=1)
    num_accounts: int = Field(ge=0)
    random_seed: int

    mean_liquidatable_fraction: Decimal = Field(ge=0, le=1)
    std_liquidatable_fraction: Decimal = Field(ge=0)
    worst_liquidatable_fraction: Decimal = Field(ge=0, le=1)
    ci_lower_95: Decimal
    ci_upper_95: Decimal

    account_liquidation_probability: dict[str, Decimal] = Field(default_factory=dict)
    account_min_health_factor: dict[str, Decimal | None] = Field(default_factory=dict)

    duration_ms: int = Field(ge=0)

    @property
    def most_fragile_account(self) -> str | None:
        if not self.account_liquidation_probability:
            return None
        return max(
            self.account_liquidation_probability,
            key=lambda a: self.account_liquidation_probability[a],
        )


class StressTester:
    """Estimate liquidation exposure under random price shocks.

    Usage:
        tester = StressTester(engine.risk, StressConfig(num_iterations=500))
        result = tester.run()
        print(result.mean_liquidatable_fraction)
    """

    def __init__(
        self,
        risk: RiskEngine,
        config: StressConfig | None = None,
        journal: EngineJournal | None = None,
    ) -> None:
        self.risk = risk
        self.config = config or StressConfig()
        self.journal = journal
        self._rng = np.random.default_rng(self.config.base_seed)

    def run(self, accounts: list[str] | None = None) -> StressResult:
        """Run the stress simulation.

        Args:
            accounts: Accounts to evaluate (default: every account with debt).

        Returns:
            StressResult with liquidation statistics.
        """
        start_time = time.time()
        stress_id = str(uuid.uuid4())[:8]
        self._rng = np.random.default_rng(self.config.base_seed)

        if accounts is None:
            accounts = [
                a for a in self.risk.ledger.accounts() if self.risk.debt_value_usd(a) > 0
            ]
        base_prices = self.risk.current_prices()
        assets = list(base_prices)

        if self.journal:
            self.journal.info(
                "Stress run started",
                {
                    "stress_id": stress_id,
                    "num_iterations": self.config.num_iterations,
                    "num_accounts": len(accounts),
                    "assets": assets,
                },
            )

        liquidatable = np.zeros((self.config.num_iterations, len(accounts)), dtype=bool)
        min_health: dict[str, int] = {a: HEALTH_FACTOR_INFINITE for a in accounts}

        for i in range(self.config.num_iterations):
            prices = self._shock_prices(base_prices, assets, self.config.base_seed + i)
            for j, account in enumerate(accounts):
                health_factor = self.risk.health_factor(account, prices)
                liquidatable[i, j] = health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD
                min_health[account] = min(min_health[account], health_factor)

        result = self._aggregate(
            stress_id=stress_id,
            accounts=accounts,
            liquidatable=liquidatable,
            min_health=min_health,
            duration_ms=int((time.time() - start_time) * 1000),
        )

        if self.journal:
            self.journal.info(
                "Stress run completed",
                {
                    "stress_id": stress_id,
                    "mean_liquidatable_fraction": str(result.mean_liquidatable_fraction),
                    "worst_liquidatable_fraction": str(result.worst_liquidatable_fraction),
                    "duration_ms": result.duration_ms,
                },
            )

        return result

    def _shock_prices(
        self,
        base_prices: dict[str, int],
        assets: list[str],
        seed: int,
    ) -> dict[str, int]:
        """Draw one correlated log-normal shock per asset."""
        rng = np.random.default_rng(seed)
        rho = self.config.market_correlation
        market_z = rng.standard_normal()
        asset_z = rng.standard_normal(len(assets))

        shocked: dict[str, int] = {}
        for k, asset in enumerate(assets):
            sigma = self.config.volatility_for(asset)
            z = np.sqrt(rho) * market_z + np.sqrt(1 - rho) * asset_z[k]
            multiplier = float(np.exp(sigma * z - 0.5 * sigma**2))
            shocked[asset] = mul_div(
                base_prices[asset], int(multiplier * _SHOCK_SCALE), _SHOCK_SCALE
            )
        return shocked

    def _aggregate(
        self,
        stress_id: str,
        accounts: list[str],
        liquidatable: np.ndarray,
        min_health: dict[str, int],
        duration_ms: int,
    ) -> StressResult:
        if accounts:
            fractions = liquidatable.mean(axis=1)
            per_account = liquidatable.mean(axis=0)
        else:
            fractions = np.zeros(self.config.num_iterations)
            per_account = np.zeros(0)

        ci_lower, ci_upper = self._bootstrap_ci(fractions, self.config.bootstrap_samples)

        return StressResult(
            stress_id=stress_id,
            num_iterations=self.config.num_iterations,
            num_accounts=len(accounts),
            random_seed=self.config.base_seed,
            mean_liquidatable_fraction=Decimal(str(float(np.mean(fractions)))),
            std_liquidatable_fraction=Decimal(str(float(np.std(fractions)))),
            worst_liquidatable_fraction=Decimal(str(float(np.max(fractions)))),
            ci_lower_95=Decimal(str(max(0.0, ci_lower))),
            ci_upper_95=Decimal(str(min(1.0, ci_upper))),
            account_liquidation_probability={
                account: Decimal(str(float(per_account[j])))
                for j, account in enumerate(accounts)
            },
            account_min_health_factor={
                account: None
                if hf == HEALTH_FACTOR_INFINITE
                else Decimal(hf) / Decimal(WAD)
                for account, hf in min_health.items()
            },
            duration_ms=duration_ms,
        )

    def _bootstrap_ci(self, data: np.ndarray, n_samples: int) -> tuple[float, float]:
        """Calculate bootstrap confidence interval of the mean."""
        if len(data) == 0:
            return 0.0, 0.0

        bootstrap_means = [
            np.mean(self._rng.choice(data, size=len(data), replace=True))
            for _ in range(n_samples)
        ]

        alpha = 1 - self.config.confidence_level
        lower = np.percentile(bootstrap_means, alpha / 2 * 100)
        upper = np.percentile(bootstrap_means, (1 - alpha / 2) * 100)

        return float(lower), float(upper)
