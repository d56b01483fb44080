"""Lending Engine - collateralized lending accounting and risk engine.

This package provides the market accounting core of a lending pool:
interest-bearing indices, dual-source price resolution, health-factor
solvency checks and liquidation settlement.
"""

__version__ = "0.1.0"

from lending_engine.core.errors import LendingError
from lending_engine.core.settings import EngineSettings
from lending_engine.engine.operations import LendingEngine

__all__ = ["EngineSettings", "LendingEngine", "LendingError", "__version__"]
