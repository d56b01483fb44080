"""Market registry, interest accrual, position ledger and risk valuation."""

from lending_engine.markets.accrual import InterestAccrual, compound_factor
from lending_engine.markets.ledger import PositionLedger, to_real, to_scaled
from lending_engine.markets.registry import MarketRegistry
from lending_engine.markets.risk import RiskEngine, health_factor_from_values

__all__ = [
    "InterestAccrual",
    "MarketRegistry",
    "PositionLedger",
    "RiskEngine",
    "compound_factor",
    "health_factor_from_values",
    "to_real",
    "to_scaled",
]
