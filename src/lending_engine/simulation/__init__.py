"""Simulation modules for lending risk analysis."""

from lending_engine.simulation.stress import StressConfig, StressResult, StressTester

__all__ = [
    "StressConfig",
    "StressResult",
    "StressTester",
]
