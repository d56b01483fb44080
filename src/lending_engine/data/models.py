"""Data models for the lending engine.

Pydantic models for:
- Market configuration (per-asset parameters and accrual indices)
- Oracle wiring (primary + fallback feed)
- Pool totals and account risk snapshots
- Observability events and liquidation results

All fixed-point fields are ints at WAD (1e18) scale. Decimal properties are
provided for display only.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lending_engine.data.constants import (
    DEFAULT_LIQUIDATION_BONUS,
    HEALTH_FACTOR_INFINITE,
    HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
    WAD,
)


class EventType(str, Enum):
    """Observability event classification."""

    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATE = "liquidate"
    INTEREST_ACCRUED = "interest_accrued"
    HEALTH_FACTOR_UPDATED = "health_factor_updated"
    REFRESHED = "refreshed"
    MARKET_ADDED = "market_added"
    MARKET_REMOVED = "market_removed"
    MARKET_UPDATED = "market_updated"


class PositionStatus(str, Enum):
    """Status of an account's overall position."""

    HEALTHY = "healthy"
    AT_RISK = "at_risk"  # Health factor < 1.5
    LIQUIDATABLE = "liquidatable"  # Health factor < 1.0


class EngineEvent(BaseModel):
    """Event published after a successful operation."""

    event_type: EventType
    timestamp: int
    data: dict[str, Any] = Field(default_factory=dict)


class OracleConfig(BaseModel):
    """Price source wiring for one asset.

    primary must provide ``latest_answer()``; fallback must provide
    ``price_no_older_than(asset_id, max_age)``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    primary: Any
    fallback: Any
    fallback_asset_id: str = Field(min_length=1)


class MarketConfig(BaseModel):
    """Per-asset market parameters and interest indices."""

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    asset: str = Field(min_length=1)
    is_supported: bool = True
    collateral_factor: int = Field(ge=0, lt=WAD, description="WAD fraction of value usable as collateral")
    oracle: OracleConfig
    decimals: int = Field(ge=0, le=255)
    supply_index: int = Field(default=WAD, ge=WAD)
    borrow_index: int = Field(default=WAD, ge=WAD)
    last_update: int = Field(ge=0)
    supply_rate: int = Field(default=0, ge=0, description="WAD APR")
    borrow_rate: int = Field(default=0, ge=0, description="WAD APR")
    liquidation_bonus: int = Field(default=DEFAULT_LIQUIDATION_BONUS, ge=WAD)

    @field_validator("asset", mode="before")
    @classmethod
    def strip_asset(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @property
    def collateral_factor_decimal(self) -> Decimal:
        return Decimal(self.collateral_factor) / Decimal(WAD)

    @property
    def supply_rate_decimal(self) -> Decimal:
        return Decimal(self.supply_rate) / Decimal(WAD)

    @property
    def borrow_rate_decimal(self) -> Decimal:
        return Decimal(self.borrow_rate) / Decimal(WAD)


class PoolTotals(BaseModel):
    """Raw-unit deposit and borrow totals for one asset."""

    total_deposits: int = Field(default=0, ge=0)
    total_borrows: int = Field(default=0, ge=0)

    @property
    def available_liquidity(self) -> int:
        return max(self.total_deposits - self.total_borrows, 0)

    @property
    def utilization(self) -> Decimal:
        """Share of deposits currently lent out."""
        if self.total_deposits == 0:
            return Decimal(0)
        return Decimal(self.total_borrows) / Decimal(self.total_deposits)


class AccountSnapshot(BaseModel):
    """Point-in-time risk view of one account (USD values at WAD scale)."""

    account: str
    collateral_value_usd: int = Field(ge=0)
    debt_value_usd: int = Field(ge=0)
    available_to_borrow_usd: int = Field(ge=0)
    health_factor: int = Field(ge=0)

    @property
    def has_debt(self) -> bool:
        return self.debt_value_usd > 0

    @property
    def health_factor_decimal(self) -> Decimal | None:
        """Health factor as decimal, None when infinite (no debt)."""
        if self.health_factor == HEALTH_FACTOR_INFINITE:
            return None
        return Decimal(self.health_factor) / Decimal(WAD)

    @property
    def collateral_value_decimal(self) -> Decimal:
        return Decimal(self.collateral_value_usd) / Decimal(WAD)

    @property
    def debt_value_decimal(self) -> Decimal:
        return Decimal(self.debt_value_usd) / Decimal(WAD)

    @property
    def status(self) -> PositionStatus:
        if self.health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            return PositionStatus.LIQUIDATABLE
        if self.health_factor < WAD * 3 // 2:
            return PositionStatus.AT_RISK
        return PositionStatus.HEALTHY

    @property
    def is_liquidatable(self) -> bool:
        return self.status == PositionStatus.LIQUIDATABLE


class LiquidationResult(BaseModel):
    """Settlement of a single liquidation call."""

    liquidator: str
    borrower: str
    repay_asset: str
    collateral_asset: str
    requested_repay: int = Field(ge=0)
    repaid: int = Field(ge=0)
    repaid_value_usd: int = Field(ge=0)
    seize_value_usd: int = Field(ge=0, description="Repaid value times liquidation bonus")
    seized: int = Field(ge=0)
    seize_capped: bool = Field(description="Seizure limited by borrower's collateral")
    health_factor_before: int
    health_factor_after: int

    @property
    def still_liquidatable(self) -> bool:
        return self.health_factor_after < HEALTH_FACTOR_LIQUIDATION_THRESHOLD
