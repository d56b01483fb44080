"""Error taxonomy for the lending engine.

Every failure surfaces as a named subclass of LendingError. Categories:
- Input: bad input, checked first, never mutates state
- Balance: liquidity, user balance, debt presence
- Solvency: health factor below the enforced margin
- Eligibility: authorization, pause, liquidatability
- Oracle: no acceptable price source

Operations never retry; the caller sees the error and nothing changed.
"""

from __future__ import annotations


class LendingError(Exception):
    """Base class for every engine failure."""

    pass


# Input validation


class InputError(LendingError):
    """Input rejected before any state is touched."""

    pass


class InvalidAmount(InputError):
    """Amount is zero or negative."""

    def __init__(self, amount: int) -> None:
        self.amount = amount
        super().__init__(f"Amount must be positive, got {amount}")


class InvalidAddress(InputError):
    """Account or asset reference is empty."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f"{field_name} must be a non-empty reference")


class UnsupportedAsset(InputError):
    """Asset is not (or no longer) a supported market."""

    def __init__(self, asset: str) -> None:
        self.asset = asset
        super().__init__(f"Asset {asset} is not a supported market")


class MarketAlreadyExists(InputError):
    """Asset already has a market configuration."""

    def __init__(self, asset: str) -> None:
        self.asset = asset
        super().__init__(f"Market for {asset} already exists")


# Balance / liquidity


class BalanceError(LendingError):
    """Balance or liquidity precondition failed."""

    pass


class InsufficientBalance(BalanceError):
    """Account deposit does not cover the requested amount."""

    def __init__(self, account: str, asset: str, requested: int, available: int) -> None:
        self.account = account
        self.asset = asset
        self.requested = requested
        self.available = available
        super().__init__(
            f"Account {account} holds {available} of {asset}, requested {requested}"
        )


class InsufficientLiquidity(BalanceError):
    """Pool does not hold enough unborrowed funds."""

    def __init__(self, asset: str, requested: int, available: int) -> None:
        self.asset = asset
        self.requested = requested
        self.available = available
        super().__init__(
            f"Pool {asset} has {available} available liquidity, requested {requested}"
        )


class NoDebtToRepay(BalanceError):
    """Account has no outstanding debt in the asset."""

    def __init__(self, account: str, asset: str) -> None:
        self.account = account
        self.asset = asset
        super().__init__(f"Account {account} has no {asset} debt")


# Solvency


class SolvencyError(LendingError):
    """Operation would leave the account undercollateralized."""

    pass


class InsufficientCollateral(SolvencyError):
    """Health factor would drop below the required minimum."""

    def __init__(self, account: str, health_factor: int, minimum: int) -> None:
        self.account = account
        self.health_factor = health_factor
        self.minimum = minimum
        super().__init__(
            f"Health factor {health_factor} for {account} below minimum {minimum}"
        )


# Eligibility / authorization


class EligibilityError(LendingError):
    """Caller or target is not eligible for the operation."""

    pass


class NotFundManager(EligibilityError):
    """Caller lacks the fund-manager role."""

    def __init__(self, caller: str) -> None:
        self.caller = caller
        super().__init__(f"{caller} is not a fund manager")


class NotLiquidatable(EligibilityError):
    """Borrower is solvent (health factor >= 1.0)."""

    def __init__(self, borrower: str, health_factor: int) -> None:
        self.borrower = borrower
        self.health_factor = health_factor
        super().__init__(
            f"Borrower {borrower} is not liquidatable (health factor {health_factor})"
        )


class EnginePaused(EligibilityError):
    """State-changing operations are suspended."""

    def __init__(self) -> None:
        super().__init__("Engine is paused")


class OpenPositionsExist(EligibilityError):
    """Market still has deposits or debts and cannot be removed."""

    def __init__(self, asset: str, total_deposits: int, total_borrows: int) -> None:
        self.asset = asset
        self.total_deposits = total_deposits
        self.total_borrows = total_borrows
        super().__init__(
            f"Market {asset} still has open positions "
            f"(deposits={total_deposits}, borrows={total_borrows})"
        )


# Oracle


class OracleError(LendingError):
    """Price could not be resolved."""

    pass


class AllPriceSourcesUnavailable(OracleError):
    """Neither the primary nor the fallback feed produced an acceptable price."""

    def __init__(self, asset_id: str) -> None:
        self.asset_id = asset_id
        super().__init__(f"No acceptable price source for {asset_id}")


# Execution


class ReentrantCall(LendingError):
    """An operation was started while another is still in flight."""

    def __init__(self, operation: str, active: str | None) -> None:
        self.operation = operation
        self.active = active
        super().__init__(
            f"Re-entrant call to {operation} while {active} is in progress"
        )


class TransferFailed(LendingError):
    """Asset transfer collaborator refused or failed to move funds."""

    def __init__(self, asset: str, account: str, amount: int, reason: str) -> None:
        self.asset = asset
        self.account = account
        self.amount = amount
        self.reason = reason
        super().__init__(f"Transfer of {amount} {asset} for {account} failed: {reason}")


class FixedPointError(LendingError, ValueError):
    """Fixed-point operand or result outside the uint256 domain."""

    pass


class SettingsError(LendingError):
    """Engine settings failed validation."""

    pass
