"""Constants for the lending engine.

Fixed-point scales, protocol parameters, and minimal price-feed ABIs.
"""

from __future__ import annotations

# =============================================================================
# Fixed-point scales
# =============================================================================

# Amounts, prices, indices and rates use 18 decimals (WAD)
WAD_DECIMALS = 18
WAD = 10**18

# Basis points (10000 = 100%)
BPS = 10**4

UINT256_MAX = 2**256 - 1

# =============================================================================
# Protocol Parameters
# =============================================================================

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Returned as health factor when an account has no debt
HEALTH_FACTOR_INFINITE = UINT256_MAX

# Health factor 1.0 is the solvency boundary
HEALTH_FACTOR_LIQUIDATION_THRESHOLD = WAD

# Withdraw/borrow must leave the account above this (1.001)
DEFAULT_MIN_HEALTH_FACTOR = WAD + 10**15

# Primary feed answers older than this are stale (1 hour)
DEFAULT_MAX_PRIMARY_DELAY = 3600

# Fallback feed prices older than this are rejected (60 seconds)
DEFAULT_MAX_FALLBACK_AGE = 60

# Default liquidation bonus (5%)
DEFAULT_LIQUIDATION_BONUS = WAD + 5 * 10**16

# =============================================================================
# Minimal ABIs (only functions we need)
# =============================================================================

# Chainlink AggregatorV3Interface
CHAINLINK_AGGREGATOR_ABI = [
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"name": "roundId", "type": "uint80"},
            {"name": "answer", "type": "int256"},
            {"name": "startedAt", "type": "uint256"},
            {"name": "updatedAt", "type": "uint256"},
            {"name": "answeredInRound", "type": "uint80"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Pyth IPyth - getPriceNoOlderThan
PYTH_ABI = [
    {
        "inputs": [
            {"name": "id", "type": "bytes32"},
            {"name": "age", "type": "uint256"},
        ],
        "name": "getPriceNoOlderThan",
        "outputs": [
            {
                "components": [
                    {"name": "price", "type": "int64"},
                    {"name": "conf", "type": "uint64"},
                    {"name": "expo", "type": "int32"},
                    {"name": "publishTime", "type": "uint256"},
                ],
                "name": "price",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
]
