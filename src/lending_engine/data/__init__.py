"""Data models and constants for the lending engine."""

from lending_engine.data.models import (
    AccountSnapshot,
    EngineEvent,
    EventType,
    LiquidationResult,
    MarketConfig,
    OracleConfig,
    PoolTotals,
    PositionStatus,
)

__all__ = [
    "AccountSnapshot",
    "EngineEvent",
    "EventType",
    "LiquidationResult",
    "MarketConfig",
    "OracleConfig",
    "PoolTotals",
    "PositionStatus",
]
