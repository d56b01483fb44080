"""Tests for deposit, withdraw, borrow, repay and refresh."""

from __future__ import annotations

import pytest

from conftest import MANAGER, PriceBoard
from lending_engine.core.clock import ManualClock
from lending_engine.core.errors import (
    AllPriceSourcesUnavailable,
    EnginePaused,
    InputError,
    InsufficientBalance,
    InsufficientCollateral,
    InsufficientLiquidity,
    InvalidAddress,
    InvalidAmount,
    NoDebtToRepay,
    NotFundManager,
    OpenPositionsExist,
    TransferFailed,
    UnsupportedAsset,
)
from lending_engine.core.settings import EngineSettings
from lending_engine.data.constants import SECONDS_PER_YEAR, WAD
from lending_engine.data.models import EngineEvent, EventType
from lending_engine.engine.governance import Governance
from lending_engine.engine.operations import LendingEngine
from lending_engine.engine.transfer import InMemoryAssetTransfer

ALICE = "0xalice"
LENDER = "0xlender"


def _state(engine: LendingEngine) -> tuple:
    """Everything an operation may touch, for before/after comparison."""
    markets = tuple(m.model_dump(exclude={"oracle"}) for m in engine.registry)
    positions = tuple(
        (
            account,
            asset,
            engine.ledger.scaled_deposit(account, asset),
            engine.ledger.scaled_debt(account, asset),
        )
        for account in engine.ledger.accounts()
        for asset in engine.registry.supported_assets()
    )
    pools = tuple(
        engine.ledger.pool(asset).model_dump() for asset in engine.registry.supported_assets()
    )
    return markets, positions, pools


@pytest.fixture
def funded(engine: LendingEngine, transfer: InMemoryAssetTransfer) -> LendingEngine:
    """Lender supplies 10000 B; Alice holds 1000 A in her wallet."""
    transfer.mint("B", LENDER, 10_000 * WAD)
    transfer.mint("A", ALICE, 1_000 * WAD)
    engine.deposit(LENDER, "B", 10_000 * WAD)
    return engine


class TestValidation:
    """Input checks run before any state is touched."""

    @pytest.mark.parametrize("amount", [0, -1])
    def test_invalid_amount(self, funded: LendingEngine, amount: int) -> None:
        with pytest.raises(InvalidAmount):
            funded.deposit(ALICE, "A", amount)
        with pytest.raises(InvalidAmount):
            funded.borrow(ALICE, "B", amount)

    @pytest.mark.parametrize("account", ["", "   "])
    def test_invalid_account(self, funded: LendingEngine, account: str) -> None:
        with pytest.raises(InvalidAddress) as exc_info:
            funded.deposit(account, "A", WAD)
        assert exc_info.value.field_name == "account"

    def test_invalid_asset(self, funded: LendingEngine) -> None:
        with pytest.raises(InvalidAddress):
            funded.withdraw(ALICE, "", WAD)

    def test_unsupported_asset(self, funded: LendingEngine) -> None:
        with pytest.raises(UnsupportedAsset):
            funded.deposit(ALICE, "DOGE", WAD)

    def test_validation_before_pause(self, funded: LendingEngine, governance: Governance) -> None:
        governance.pause()
        with pytest.raises(InvalidAmount):
            funded.deposit(ALICE, "A", 0)

    @pytest.mark.parametrize(
        ("account", "asset", "amount"),
        [(ALICE, "A", 0), ("", "A", WAD), (ALICE, "", WAD), (ALICE, "DOGE", WAD)],
    )
    def test_input_errors_share_a_category(
        self, funded: LendingEngine, account: str, asset: str, amount: int
    ) -> None:
        with pytest.raises(InputError):
            funded.deposit(account, asset, amount)


class TestDeposit:
    def test_deposit_credits_and_pulls(
        self, funded: LendingEngine, transfer: InMemoryAssetTransfer
    ) -> None:
        funded.deposit(ALICE, "A", 1_000 * WAD)
        assert funded.deposit_balance(ALICE, "A") == 1_000 * WAD
        assert funded.pool_totals("A").total_deposits == 1_000 * WAD
        assert transfer.balance_of("A", ALICE) == 0
        assert transfer.custody("A") == 1_000 * WAD

    def test_failed_pull_changes_nothing(
        self, funded: LendingEngine, transfer: InMemoryAssetTransfer
    ) -> None:
        before = _state(funded)
        with pytest.raises(TransferFailed):
            funded.deposit(ALICE, "A", 1_001 * WAD)
        assert _state(funded) == before
        assert transfer.balance_of("A", ALICE) == 1_000 * WAD


class TestBorrow:
    """Borrowing against collateral."""

    @pytest.fixture(autouse=True)
    def collateral(self, funded: LendingEngine) -> None:
        funded.deposit(ALICE, "A", 1_000 * WAD)

    def test_borrow_within_margin(
        self, funded: LendingEngine, transfer: InMemoryAssetTransfer
    ) -> None:
        funded.borrow(ALICE, "B", 749 * WAD)
        assert funded.debt_balance(ALICE, "B") == 749 * WAD
        assert funded.pool_totals("B").total_borrows == 749 * WAD
        assert transfer.balance_of("B", ALICE) == 749 * WAD

    def test_borrow_beyond_collateral_rejected(
        self, funded: LendingEngine, transfer: InMemoryAssetTransfer
    ) -> None:
        before = _state(funded)
        with pytest.raises(InsufficientCollateral) as exc_info:
            funded.borrow(ALICE, "B", 751 * WAD)
        assert exc_info.value.health_factor < WAD
        assert _state(funded) == before
        assert transfer.balance_of("B", ALICE) == 0

    def test_borrow_at_exact_parity_rejected(self, funded: LendingEngine) -> None:
        """A health factor of exactly 1.0 is below the enforced margin."""
        with pytest.raises(InsufficientCollateral):
            funded.borrow(ALICE, "B", 750 * WAD)

    def test_borrow_beyond_liquidity(self, funded: LendingEngine) -> None:
        with pytest.raises(InsufficientLiquidity) as exc_info:
            funded.borrow(ALICE, "B", 10_001 * WAD)
        assert exc_info.value.available == 10_000 * WAD

    def test_borrow_needs_prices(self, funded: LendingEngine, prices: PriceBoard) -> None:
        prices.primary["A"].fail = True
        before = _state(funded)
        with pytest.raises(AllPriceSourcesUnavailable):
            funded.borrow(ALICE, "B", 100 * WAD)
        assert _state(funded) == before


class TestWithdraw:
    """Withdrawing collateral."""

    @pytest.fixture(autouse=True)
    def collateral(self, funded: LendingEngine) -> None:
        funded.deposit(ALICE, "A", 1_000 * WAD)

    def test_full_withdraw_without_debt(
        self, funded: LendingEngine, transfer: InMemoryAssetTransfer
    ) -> None:
        funded.withdraw(ALICE, "A", 1_000 * WAD)
        assert funded.deposit_balance(ALICE, "A") == 0
        assert funded.pool_totals("A").total_deposits == 0
        assert transfer.balance_of("A", ALICE) == 1_000 * WAD

    def test_withdraw_more_than_deposit(self, funded: LendingEngine) -> None:
        with pytest.raises(InsufficientBalance) as exc_info:
            funded.withdraw(ALICE, "A", 1_001 * WAD)
        assert exc_info.value.available == 1_000 * WAD

    def test_withdraw_breaching_margin(
        self, funded: LendingEngine, transfer: InMemoryAssetTransfer
    ) -> None:
        """749.25 / 749 = 1.00033 is above 1.0 but below the 1.001 margin."""
        funded.borrow(ALICE, "B", 749 * WAD)
        before = _state(funded)
        with pytest.raises(InsufficientCollateral):
            funded.withdraw(ALICE, "A", 1 * WAD)
        assert _state(funded) == before
        assert transfer.balance_of("A", ALICE) == 0

    def test_withdraw_limited_by_liquidity(self, funded: LendingEngine) -> None:
        funded.borrow(ALICE, "B", 700 * WAD)

        with pytest.raises(InsufficientLiquidity) as exc_info:
            funded.withdraw(LENDER, "B", 9_301 * WAD)
        assert exc_info.value.available == 9_300 * WAD

        funded.withdraw(LENDER, "B", 9_300 * WAD)
        assert funded.available_liquidity("B") == 0


class TestRepay:
    @pytest.fixture(autouse=True)
    def debt(self, funded: LendingEngine) -> None:
        funded.deposit(ALICE, "A", 1_000 * WAD)
        funded.borrow(ALICE, "B", 100 * WAD)

    def test_partial_repay(self, funded: LendingEngine, transfer: InMemoryAssetTransfer) -> None:
        assert funded.repay(ALICE, "B", 40 * WAD) == 40 * WAD
        assert funded.debt_balance(ALICE, "B") == 60 * WAD
        assert transfer.balance_of("B", ALICE) == 60 * WAD

    def test_overpayment_capped(
        self, funded: LendingEngine, transfer: InMemoryAssetTransfer
    ) -> None:
        transfer.mint("B", ALICE, 50 * WAD)
        repaid = funded.repay(ALICE, "B", 150 * WAD)
        assert repaid == 100 * WAD
        assert funded.debt_balance(ALICE, "B") == 0
        assert funded.pool_totals("B").total_borrows == 0
        assert transfer.balance_of("B", ALICE) == 50 * WAD

    def test_no_debt(self, funded: LendingEngine) -> None:
        funded.repay(ALICE, "B", 100 * WAD)
        with pytest.raises(NoDebtToRepay):
            funded.repay(ALICE, "B", 1)
        with pytest.raises(NoDebtToRepay):
            funded.repay(ALICE, "A", 1)

    def test_repay_with_accrued_interest(
        self,
        funded: LendingEngine,
        prices: PriceBoard,
        clock: ManualClock,
        transfer: InMemoryAssetTransfer,
    ) -> None:
        """Interest repaid beyond recorded principal saturates pool borrows at zero."""
        funded.set_interest_rates("B", 0, 13 * WAD // 100)
        clock.advance(SECONDS_PER_YEAR)
        prices.refresh()
        transfer.mint("B", ALICE, 100 * WAD)

        repaid = funded.repay(ALICE, "B", 1_000 * WAD)
        assert 113 * WAD < repaid < 114 * WAD
        assert funded.debt_balance(ALICE, "B") == 0
        assert funded.pool_totals("B").total_borrows == 0


class TestInterest:
    def test_debt_grows_with_borrow_index(
        self, funded: LendingEngine, prices: PriceBoard, clock: ManualClock
    ) -> None:
        funded.set_interest_rates("B", 10 * WAD // 100, 13 * WAD // 100)
        funded.deposit(ALICE, "A", 1_000 * WAD)
        funded.borrow(ALICE, "B", 100 * WAD)

        clock.advance(SECONDS_PER_YEAR)
        prices.refresh()
        assert funded.refresh_all(MANAGER) == ["A", "B"]

        assert 113 * WAD < funded.debt_balance(ALICE, "B") < 114 * WAD
        assert 11_000 * WAD < funded.deposit_balance(LENDER, "B") < 11_100 * WAD

    def test_set_interest_rates_accrues_at_old_rate(
        self, funded: LendingEngine, clock: ManualClock
    ) -> None:
        funded.set_interest_rates("B", 0, 10 * WAD // 100)
        clock.advance(SECONDS_PER_YEAR)
        funded.set_interest_rates("B", 0, 0)

        market = funded.market("B")
        assert market.last_update == clock()
        assert 1_105 * 10**15 < market.borrow_index < 1_106 * 10**15


class TestRefreshAll:
    def test_requires_fund_manager(self, funded: LendingEngine, clock: ManualClock) -> None:
        clock.advance(10)
        with pytest.raises(NotFundManager):
            funded.refresh_all(ALICE)
        assert funded.market("A").last_update < clock()

    def test_refresh_idempotent(self, funded: LendingEngine, clock: ManualClock) -> None:
        clock.advance(10)
        assert funded.refresh_all(MANAGER) == ["A", "B"]
        assert funded.refresh_all(MANAGER) == []

    def test_refresh_event(self, funded: LendingEngine, clock: ManualClock) -> None:
        clock.advance(10)
        funded.refresh_all(MANAGER)
        refreshed = [e for e in funded.events if e.event_type == EventType.REFRESHED]
        assert refreshed[-1].data == {"caller": MANAGER, "assets": ["A", "B"]}


class TestPause:
    def test_paused_engine_rejects_operations(
        self, funded: LendingEngine, governance: Governance
    ) -> None:
        governance.pause()
        for call in (
            lambda: funded.deposit(ALICE, "A", WAD),
            lambda: funded.withdraw(LENDER, "B", WAD),
            lambda: funded.borrow(ALICE, "B", WAD),
            lambda: funded.repay(ALICE, "B", WAD),
            lambda: funded.liquidate(LENDER, ALICE, "B", "A", WAD),
            lambda: funded.refresh_all(MANAGER),
        ):
            with pytest.raises(EnginePaused):
                call()

    def test_unpause_resumes(self, funded: LendingEngine, governance: Governance) -> None:
        governance.pause()
        governance.unpause()
        funded.deposit(ALICE, "A", WAD)
        assert funded.deposit_balance(ALICE, "A") == WAD

    def test_admin_allowed_while_paused(
        self, funded: LendingEngine, governance: Governance
    ) -> None:
        governance.pause()
        funded.set_collateral_factor("A", 50 * WAD // 100)
        assert funded.market("A").collateral_factor == 50 * WAD // 100


class TestEvents:
    """Events are published only after a successful operation."""

    def test_deposit_event(self, funded: LendingEngine) -> None:
        received: list[EngineEvent] = []
        funded.subscribe(received.append)
        funded.deposit(ALICE, "A", 10 * WAD)

        assert [e.event_type for e in received] == [EventType.DEPOSIT]
        assert received[0].data == {"account": ALICE, "asset": "A", "amount": 10 * WAD}

    def test_borrow_emits_health_update(self, funded: LendingEngine) -> None:
        funded.deposit(ALICE, "A", 1_000 * WAD)
        start = len(funded.events)
        funded.borrow(ALICE, "B", 100 * WAD)

        types = [e.event_type for e in funded.events[start:]]
        assert types == [EventType.BORROW, EventType.HEALTH_FACTOR_UPDATED]
        assert funded.events[-1].data["health_factor"] == 750 * WAD * WAD // (100 * WAD)

    def test_accrual_events_precede_operation_event(
        self, funded: LendingEngine, clock: ManualClock
    ) -> None:
        clock.advance(1)
        start = len(funded.events)
        funded.deposit(ALICE, "A", WAD)
        types = [e.event_type for e in funded.events[start:]]
        assert types == [EventType.INTEREST_ACCRUED, EventType.INTEREST_ACCRUED, EventType.DEPOSIT]

    def test_failed_operation_publishes_nothing(
        self, funded: LendingEngine, clock: ManualClock
    ) -> None:
        clock.advance(1)
        start = len(funded.events)
        with pytest.raises(InsufficientCollateral):
            funded.borrow(ALICE, "B", WAD)
        assert funded.events[start:] == []
        # Accrual inside the failed operation was rolled back too
        assert funded.market("B").last_update == clock() - 1


class TestMarketAdministration:
    def test_add_market_event(self, funded: LendingEngine, prices: PriceBoard) -> None:
        funded.add_market("C", prices.oracle("C", 10**8), decimals=8, collateral_factor=0)
        assert funded.events[-1].event_type == EventType.MARKET_ADDED
        assert funded.market("C").decimals == 8

    def test_remove_market_with_positions(self, funded: LendingEngine) -> None:
        with pytest.raises(OpenPositionsExist) as exc_info:
            funded.remove_market("B")
        assert exc_info.value.total_deposits == 10_000 * WAD
        assert funded.market("B").asset == "B"

    def test_remove_empty_market(self, funded: LendingEngine) -> None:
        funded.remove_market("A")
        with pytest.raises(UnsupportedAsset):
            funded.deposit(ALICE, "A", WAD)
        assert funded.events[-1].event_type == EventType.MARKET_REMOVED

    def test_remove_after_full_exit(self, funded: LendingEngine) -> None:
        funded.withdraw(LENDER, "B", 10_000 * WAD)
        funded.remove_market("B")
        assert "B" not in funded.registry


class TestPoolInvariant:
    """Total deposits never fall below total borrows."""

    def test_invariant_through_lifecycle(
        self,
        funded: LendingEngine,
        prices: PriceBoard,
        clock: ManualClock,
        transfer: InMemoryAssetTransfer,
    ) -> None:
        funded.set_interest_rates("B", 2 * WAD // 100, 8 * WAD // 100)

        def check() -> None:
            for asset in ("A", "B"):
                pool = funded.pool_totals(asset)
                assert pool.total_deposits >= pool.total_borrows

        funded.deposit(ALICE, "A", 1_000 * WAD)
        check()
        funded.borrow(ALICE, "B", 500 * WAD)
        check()
        clock.advance(30 * 86_400)
        prices.refresh()
        funded.refresh_all(MANAGER)
        check()
        funded.repay(ALICE, "B", 200 * WAD)
        check()
        funded.withdraw(LENDER, "B", 5_000 * WAD)
        check()
        transfer.mint("B", ALICE, 50 * WAD)
        funded.repay(ALICE, "B", 10_000 * WAD)
        check()
        funded.withdraw(ALICE, "A", 1_000 * WAD)
        check()


class TestSettings:
    def test_custom_margin(
        self,
        clock: ManualClock,
        prices: PriceBoard,
        transfer: InMemoryAssetTransfer,
    ) -> None:
        """A 1.5 margin blocks borrows a 1.001 margin would allow."""
        engine = LendingEngine(
            transfer, settings=EngineSettings(min_health_factor=3 * WAD // 2), clock=clock
        )
        for asset in ("A", "B"):
            engine.add_market(
                asset,
                prices.oracle(asset, 10**8),
                decimals=18,
                collateral_factor=75 * WAD // 100,
            )
        transfer.mint("A", ALICE, 1_000 * WAD)
        transfer.mint("B", LENDER, 1_000 * WAD)
        engine.deposit(ALICE, "A", 1_000 * WAD)
        engine.deposit(LENDER, "B", 1_000 * WAD)

        with pytest.raises(InsufficientCollateral):
            engine.borrow(ALICE, "B", 501 * WAD)
        engine.borrow(ALICE, "B", 500 * WAD)
