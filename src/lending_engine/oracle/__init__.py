"""Price oracle and feed adapters."""

from lending_engine.oracle.feeds import (
    ChainlinkFeed,
    FallbackFeed,
    FallbackPrice,
    FeedAnswer,
    FeedUnavailable,
    ManualFallbackFeed,
    ManualPrimaryFeed,
    PrimaryFeed,
    PythFeed,
)
from lending_engine.oracle.price_oracle import PriceOracle, normalize_exponent

__all__ = [
    # Feeds
    "ChainlinkFeed",
    "FallbackFeed",
    "FallbackPrice",
    "FeedAnswer",
    "FeedUnavailable",
    "ManualFallbackFeed",
    "ManualPrimaryFeed",
    "PrimaryFeed",
    "PythFeed",
    # Oracle
    "PriceOracle",
    "normalize_exponent",
]
