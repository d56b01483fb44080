"""Core modules: errors, fixed-point math, settings, clock and journal."""

from lending_engine.core.clock import Clock, ManualClock, system_clock
from lending_engine.core.errors import (
    AllPriceSourcesUnavailable,
    BalanceError,
    EligibilityError,
    EnginePaused,
    FixedPointError,
    InputError,
    InsufficientBalance,
    InsufficientCollateral,
    InsufficientLiquidity,
    InvalidAddress,
    InvalidAmount,
    LendingError,
    MarketAlreadyExists,
    NoDebtToRepay,
    NotFundManager,
    NotLiquidatable,
    OpenPositionsExist,
    OracleError,
    ReentrantCall,
    SettingsError,
    SolvencyError,
    TransferFailed,
    UnsupportedAsset,
)
from lending_engine.core.fixed_point import (
    bps_to_wad,
    denormalize,
    mul_div,
    mul_div_up,
    normalize,
    rpow,
    to_decimal,
)
from lending_engine.core.logging import EngineJournal, JournalEntry, verify_journal_integrity
from lending_engine.core.settings import EngineSettings

__all__ = [
    # Clock
    "Clock",
    "ManualClock",
    "system_clock",
    # Errors
    "AllPriceSourcesUnavailable",
    "BalanceError",
    "EligibilityError",
    "EnginePaused",
    "FixedPointError",
    "InputError",
    "InsufficientBalance",
    "InsufficientCollateral",
    "InsufficientLiquidity",
    "InvalidAddress",
    "InvalidAmount",
    "LendingError",
    "MarketAlreadyExists",
    "NoDebtToRepay",
    "NotFundManager",
    "NotLiquidatable",
    "OpenPositionsExist",
    "OracleError",
    "ReentrantCall",
    "SettingsError",
    "SolvencyError",
    "TransferFailed",
    "UnsupportedAsset",
    # Fixed point
    "bps_to_wad",
    "denormalize",
    "mul_div",
    "mul_div_up",
    "normalize",
    "rpow",
    "to_decimal",
    # Journal
    "EngineJournal",
    "JournalEntry",
    "verify_journal_integrity",
    # Settings
    "EngineSettings",
]
