"""Lending operations: the state-transition surface of the engine.

Every public state-changing call runs inside a single operation scope that:
1. Refuses re-entry while another operation is in flight
2. Refuses to run while governance has paused the engine
3. Snapshots registry and ledger, restoring both on any failure
4. Buffers events and publishes them only after a successful commit

Within the scope, interest is accrued before any balance is read or written;
withdraw and borrow then re-check the health factor against a margin strictly
above 1.0 after a tentative mutation.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator

from loguru import logger

from lending_engine.core.clock import Clock, system_clock
from lending_engine.core.errors import (
    EnginePaused,
    InsufficientBalance,
    InsufficientCollateral,
    InsufficientLiquidity,
    InvalidAddress,
    InvalidAmount,
    NoDebtToRepay,
    NotFundManager,
    NotLiquidatable,
    OpenPositionsExist,
    UnsupportedAsset,
)
from lending_engine.core.fixed_point import denormalize, mul_div
from lending_engine.core.logging import EngineJournal
from lending_engine.core.settings import EngineSettings
from lending_engine.data.constants import (
    DEFAULT_LIQUIDATION_BONUS,
    HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
    WAD,
)
from lending_engine.data.models import (
    AccountSnapshot,
    EngineEvent,
    EventType,
    LiquidationResult,
    MarketConfig,
    OracleConfig,
    PoolTotals,
)
from lending_engine.engine.governance import Governance
from lending_engine.engine.guard import ReentrancyGuard
from lending_engine.engine.transfer import AssetTransfer
from lending_engine.markets.accrual import InterestAccrual
from lending_engine.markets.ledger import PositionLedger
from lending_engine.markets.registry import MarketRegistry
from lending_engine.markets.risk import RiskEngine
from lending_engine.oracle.price_oracle import PriceOracle

EventSubscriber = Callable[[EngineEvent], None]


class LendingEngine:
    """Collateralized lending engine.

    Usage:
        engine = LendingEngine(transfer, governance=gov, clock=clock)
        engine.add_market("WETH", oracle_cfg, decimals=18,
                          collateral_factor=75 * 10**16)
        engine.deposit("0xalice", "WETH", 10**18)
        engine.borrow("0xalice", "USDC", 1_000 * 10**6)
    """

    def __init__(
        self,
        transfer: AssetTransfer,
        governance: Governance | None = None,
        settings: EngineSettings | None = None,
        clock: Clock = system_clock,
        journal: EngineJournal | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            transfer: Asset transfer collaborator.
            governance: Fund-manager set and pause flag (default: empty, unpaused).
            settings: Engine parameters (default: protocol defaults).
            clock: Time source for accrual and oracle staleness.
            journal: Optional hash-chained journal for published events.
        """
        self.settings = settings or EngineSettings()
        self.clock = clock
        self.transfer = transfer
        self.governance = governance or Governance()
        self.journal = journal

        self.registry = MarketRegistry()
        self.ledger = PositionLedger()
        self.oracle = PriceOracle(
            clock=clock,
            max_primary_delay=self.settings.max_primary_delay,
            max_fallback_age=self.settings.max_fallback_age,
        )
        self.accrual = InterestAccrual(
            self.registry,
            clock=clock,
            seconds_per_year=self.settings.seconds_per_year,
            emit=self._record,
        )
        self.risk = RiskEngine(self.registry, self.ledger, self.oracle)

        self.events: list[EngineEvent] = []
        self._subscribers: list[EventSubscriber] = []
        self._guard = ReentrancyGuard()
        self._pending: list[EngineEvent] = []
        self._pulled: list[tuple[str, str, int]] = []

    # =========================================================================
    # Events
    # =========================================================================

    def subscribe(self, callback: EventSubscriber) -> None:
        """Receive every event published after a successful operation."""
        self._subscribers.append(callback)

    def _record(self, event: EngineEvent) -> None:
        self._pending.append(event)

    def _emit(self, event_type: EventType, **data: Any) -> None:
        self._record(EngineEvent(event_type=event_type, timestamp=self.clock(), data=data))

    def _publish(self, events: list[EngineEvent]) -> None:
        for event in events:
            self.events.append(event)
            if self.journal is not None:
                self.journal.log_event(event)
            for callback in self._subscribers:
                callback(event)

    # =========================================================================
    # Operation scope
    # =========================================================================

    @contextmanager
    def _operation(self, name: str, pausable: bool = True) -> Iterator[None]:
        with self._guard.enter(name):
            if pausable and self.governance.paused:
                raise EnginePaused()

            registry_snapshot = self.registry.snapshot()
            ledger_snapshot = self.ledger.snapshot()
            self._pending = []
            self._pulled = []
            try:
                yield
            except Exception as e:
                self._refund_pulls()
                self.registry.restore(registry_snapshot)
                self.ledger.restore(ledger_snapshot)
                self._pending = []
                logger.info(f"{name} rejected: {type(e).__name__}: {e}")
                raise
            finally:
                self._pulled = []
            committed = self._pending
            self._pending = []

        self._publish(committed)

    def _pull(self, asset: str, account: str, amount: int) -> None:
        if amount == 0:
            return
        self.transfer.pull(asset, account, amount)
        self._pulled.append((asset, account, amount))

    def _push(self, asset: str, account: str, amount: int) -> None:
        if amount == 0:
            return
        self.transfer.push(asset, account, amount)

    def _refund_pulls(self) -> None:
        """Return funds pulled earlier in a failing operation."""
        for asset, account, amount in reversed(self._pulled):
            try:
                self.transfer.push(asset, account, amount)
            except Exception:
                logger.exception(f"Refund of {amount} {asset} to {account} failed")

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(
        self,
        accounts: dict[str, str],
        assets: dict[str, str],
        amount: int | None = None,
    ) -> None:
        for field_name, value in {**accounts, **assets}.items():
            if not isinstance(value, str) or not value.strip():
                raise InvalidAddress(field_name)
        if amount is not None and amount <= 0:
            raise InvalidAmount(amount)
        for asset in assets.values():
            if not self.registry.is_supported(asset):
                raise UnsupportedAsset(asset)

    def _require_healthy(self, account: str) -> int:
        health_factor = self.risk.health_factor(account)
        if health_factor < self.settings.min_health_factor:
            raise InsufficientCollateral(account, health_factor, self.settings.min_health_factor)
        return health_factor

    # =========================================================================
    # Lending operations
    # =========================================================================

    def deposit(self, account: str, asset: str, amount: int) -> None:
        """Supply amount of asset as collateral.

        Raises:
            InvalidAmount, InvalidAddress, UnsupportedAsset, EnginePaused,
            TransferFailed.
        """
        self._validate({"account": account}, {"asset": asset}, amount)
        with self._operation("deposit"):
            self.accrual.accrue_all()
            market = self.registry.get(asset)

            self._pull(asset, account, amount)
            self.ledger.credit_deposit(account, asset, amount, market.supply_index)
            self.ledger.add_pool_deposits(asset, amount)

            self._emit(EventType.DEPOSIT, account=account, asset=asset, amount=amount)

    def withdraw(self, account: str, asset: str, amount: int) -> None:
        """Withdraw supplied collateral.

        Raises:
            InsufficientBalance: Deposit does not cover amount.
            InsufficientLiquidity: Pool cannot pay out amount.
            InsufficientCollateral: Withdrawal would breach the health margin.
        """
        self._validate({"account": account}, {"asset": asset}, amount)
        with self._operation("withdraw"):
            self.accrual.accrue_all()
            market = self.registry.get(asset)

            balance = self.ledger.deposit_balance(account, asset, market.supply_index)
            if balance < amount:
                raise InsufficientBalance(account, asset, amount, balance)
            available = self.ledger.available_liquidity(asset)
            if available < amount:
                raise InsufficientLiquidity(asset, amount, available)

            self.ledger.debit_deposit(account, asset, amount, market.supply_index)
            self.ledger.remove_pool_deposits(asset, amount)
            health_factor = self._require_healthy(account)

            self._push(asset, account, amount)

            self._emit(EventType.WITHDRAW, account=account, asset=asset, amount=amount)
            self._emit(
                EventType.HEALTH_FACTOR_UPDATED, account=account, health_factor=health_factor
            )

    def borrow(self, account: str, asset: str, amount: int) -> None:
        """Borrow against deposited collateral.

        Raises:
            InsufficientLiquidity: Pool cannot lend amount.
            InsufficientCollateral: Borrow would breach the health margin.
            AllPriceSourcesUnavailable: A held asset cannot be priced.
        """
        self._validate({"account": account}, {"asset": asset}, amount)
        with self._operation("borrow"):
            self.accrual.accrue_all()
            market = self.registry.get(asset)

            available = self.ledger.available_liquidity(asset)
            if available < amount:
                raise InsufficientLiquidity(asset, amount, available)

            self.ledger.credit_debt(account, asset, amount, market.borrow_index)
            self.ledger.add_pool_borrows(asset, amount)
            health_factor = self._require_healthy(account)

            self._push(asset, account, amount)

            self._emit(EventType.BORROW, account=account, asset=asset, amount=amount)
            self._emit(
                EventType.HEALTH_FACTOR_UPDATED, account=account, health_factor=health_factor
            )

    def repay(self, account: str, asset: str, amount: int) -> int:
        """Repay debt; overpayment is capped at the outstanding debt.

        Returns:
            The amount actually pulled and applied.

        Raises:
            NoDebtToRepay: Account owes nothing in asset.
        """
        self._validate({"account": account}, {"asset": asset}, amount)
        with self._operation("repay"):
            self.accrual.accrue_all()
            market = self.registry.get(asset)

            debt = self.ledger.debt_balance(account, asset, market.borrow_index)
            if debt == 0:
                raise NoDebtToRepay(account, asset)
            repaid = min(amount, debt)

            self._pull(asset, account, repaid)
            self.ledger.debit_debt(account, asset, repaid, market.borrow_index)
            self.ledger.remove_pool_borrows(asset, repaid)

            self._emit(EventType.REPAY, account=account, asset=asset, amount=repaid)
        return repaid

    def liquidate(
        self,
        liquidator: str,
        borrower: str,
        repay_asset: str,
        collateral_asset: str,
        repay_amount: int,
    ) -> LiquidationResult:
        """Repay part of an unhealthy borrower's debt and seize collateral.

        Only the two named assets are accrued. The repay is capped at the
        borrower's debt, the seizure at the borrower's collateral; a
        liquidation that leaves the borrower still unhealthy is allowed.

        Raises:
            NotLiquidatable: Borrower's health factor is >= 1.0.
            NoDebtToRepay: Borrower owes nothing in repay_asset.
            InsufficientLiquidity: Collateral pool cannot release the seizure.
        """
        self._validate(
            {"liquidator": liquidator, "borrower": borrower},
            {"repay_asset": repay_asset, "collateral_asset": collateral_asset},
            repay_amount,
        )
        with self._operation("liquidate"):
            self.accrual.accrue(repay_asset)
            self.accrual.accrue(collateral_asset)
            repay_market = self.registry.get(repay_asset)
            collateral_market = self.registry.get(collateral_asset)

            health_before = self.risk.health_factor(borrower)
            if health_before >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
                raise NotLiquidatable(borrower, health_before)

            debt = self.ledger.debt_balance(borrower, repay_asset, repay_market.borrow_index)
            if debt == 0:
                raise NoDebtToRepay(borrower, repay_asset)
            repaid = min(repay_amount, debt)

            repaid_value = self.risk.value_usd(repay_market, repaid)
            seize_value = mul_div(repaid_value, collateral_market.liquidation_bonus, WAD)
            collateral_price = self.risk.price_of(collateral_market)
            seize = denormalize(
                mul_div(seize_value, WAD, collateral_price), collateral_market.decimals
            )

            collateral = self.ledger.deposit_balance(
                borrower, collateral_asset, collateral_market.supply_index
            )
            seize_capped = seize > collateral
            if seize_capped:
                logger.warning(
                    f"Seizure of {seize} {collateral_asset} capped at borrower "
                    f"collateral {collateral}"
                )
                seize = collateral

            self.ledger.debit_debt(borrower, repay_asset, repaid, repay_market.borrow_index)
            self.ledger.remove_pool_borrows(repay_asset, repaid)

            # Measured after the debt debit, so a same-asset repay counts as liquidity
            available = self.ledger.available_liquidity(collateral_asset)
            if available < seize:
                raise InsufficientLiquidity(collateral_asset, seize, available)

            self._pull(repay_asset, liquidator, repaid)
            self.ledger.debit_deposit(
                borrower, collateral_asset, seize, collateral_market.supply_index
            )
            self.ledger.remove_pool_deposits(collateral_asset, seize)
            self._push(collateral_asset, liquidator, seize)

            health_after = self.risk.health_factor(borrower)

            self._emit(
                EventType.LIQUIDATE,
                account=borrower,
                liquidator=liquidator,
                asset=repay_asset,
                amount=repaid,
                collateral_asset=collateral_asset,
                seized=seize,
            )
            self._emit(
                EventType.HEALTH_FACTOR_UPDATED, account=borrower, health_factor=health_after
            )

        return LiquidationResult(
            liquidator=liquidator,
            borrower=borrower,
            repay_asset=repay_asset,
            collateral_asset=collateral_asset,
            requested_repay=repay_amount,
            repaid=repaid,
            repaid_value_usd=repaid_value,
            seize_value_usd=seize_value,
            seized=seize,
            seize_capped=seize_capped,
            health_factor_before=health_before,
            health_factor_after=health_after,
        )

    def refresh_all(self, caller: str) -> list[str]:
        """Advance every market's indices (fund managers only).

        Returns:
            Assets whose indices moved.
        """
        self._validate({"caller": caller}, {})
        if not self.governance.is_fund_manager(caller):
            raise NotFundManager(caller)
        with self._operation("refresh_all"):
            accrued = self.accrual.accrue_all()
            self._emit(EventType.REFRESHED, caller=caller, assets=accrued)
        return accrued

    # =========================================================================
    # Market administration (inputs already authorized by governance)
    # =========================================================================

    def add_market(
        self,
        asset: str,
        oracle: OracleConfig,
        decimals: int,
        collateral_factor: int,
        supply_rate: int = 0,
        borrow_rate: int = 0,
        liquidation_bonus: int = DEFAULT_LIQUIDATION_BONUS,
    ) -> MarketConfig:
        """List a new asset with fresh indices."""
        if not isinstance(asset, str) or not asset.strip():
            raise InvalidAddress("asset")
        with self._operation("add_market", pausable=False):
            market = self.registry.add_market(
                asset,
                oracle,
                decimals=decimals,
                collateral_factor=collateral_factor,
                now=self.clock(),
                supply_rate=supply_rate,
                borrow_rate=borrow_rate,
                liquidation_bonus=liquidation_bonus,
            )
            self._emit(
                EventType.MARKET_ADDED,
                asset=asset,
                decimals=decimals,
                collateral_factor=collateral_factor,
                supply_rate=supply_rate,
                borrow_rate=borrow_rate,
                liquidation_bonus=liquidation_bonus,
            )
        return market

    def remove_market(self, asset: str) -> None:
        """Delist an asset.

        Raises:
            OpenPositionsExist: Any account still holds a deposit or debt.
        """
        with self._operation("remove_market", pausable=False):
            self.registry.get(asset)
            if self.ledger.has_open_positions(asset):
                pool = self.ledger.pool(asset)
                raise OpenPositionsExist(asset, pool.total_deposits, pool.total_borrows)
            self.registry.remove_market(asset)
            self._emit(EventType.MARKET_REMOVED, asset=asset)

    def set_collateral_factor(self, asset: str, collateral_factor: int) -> MarketConfig:
        with self._operation("set_collateral_factor", pausable=False):
            market = self.registry.set_collateral_factor(asset, collateral_factor)
            self._emit(EventType.MARKET_UPDATED, asset=asset, collateral_factor=collateral_factor)
        return market

    def set_interest_rates(self, asset: str, supply_rate: int, borrow_rate: int) -> MarketConfig:
        """Change rates; interest up to now accrues at the old rates."""
        with self._operation("set_interest_rates", pausable=False):
            self.accrual.accrue(asset)
            market = self.registry.set_interest_rates(asset, supply_rate, borrow_rate)
            self._emit(
                EventType.MARKET_UPDATED,
                asset=asset,
                supply_rate=supply_rate,
                borrow_rate=borrow_rate,
            )
        return market

    def set_liquidation_bonus(self, asset: str, liquidation_bonus: int) -> MarketConfig:
        with self._operation("set_liquidation_bonus", pausable=False):
            market = self.registry.set_liquidation_bonus(asset, liquidation_bonus)
            self._emit(EventType.MARKET_UPDATED, asset=asset, liquidation_bonus=liquidation_bonus)
        return market

    # =========================================================================
    # Views (as of the last accrual)
    # =========================================================================

    def deposit_balance(self, account: str, asset: str) -> int:
        market = self.registry.get(asset)
        return self.ledger.deposit_balance(account, asset, market.supply_index)

    def debt_balance(self, account: str, asset: str) -> int:
        market = self.registry.get(asset)
        return self.ledger.debt_balance(account, asset, market.borrow_index)

    def pool_totals(self, asset: str) -> PoolTotals:
        self.registry.get(asset)
        return self.ledger.pool(asset).model_copy()

    def available_liquidity(self, asset: str) -> int:
        self.registry.get(asset)
        return self.ledger.available_liquidity(asset)

    def health_factor(self, account: str) -> int:
        return self.risk.health_factor(account)

    def account_snapshot(self, account: str) -> AccountSnapshot:
        return self.risk.account_snapshot(account)

    def market(self, asset: str) -> MarketConfig:
        return self.registry.get(asset)
