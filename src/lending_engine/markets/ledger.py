"""Scaled position bookkeeping.

Accounts store index-independent "scaled" balances; the real balance is
reconstructed lazily from the market's current index:

    real   = scaled * index // WAD
    scaled = real * WAD // index

so accrual touches O(assets) indices, never O(accounts) positions.

Rounding always favours the pool: deposits credit floor(scaled), withdrawals
burn ceil(scaled); borrows mint ceil(scaled) debt, repayments burn
floor(scaled). A debit equal to the full real balance clears the position.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from dataclasses import dataclass, field

from lending_engine.core.fixed_point import mul_div, mul_div_up
from lending_engine.data.constants import WAD
from lending_engine.data.models import PoolTotals


def to_scaled(real: int, index: int, round_up: bool = False) -> int:
    """Convert a real amount to scaled units at the given index."""
    if round_up:
        return mul_div_up(real, WAD, index)
    return mul_div(real, WAD, index)


def to_real(scaled: int, index: int) -> int:
    """Convert scaled units to a real amount at the given index."""
    return mul_div(scaled, index, WAD)


@dataclass
class LedgerState:
    """Copyable state of a PositionLedger."""

    deposits: dict[str, dict[str, int]] = field(default_factory=lambda: defaultdict(dict))
    debts: dict[str, dict[str, int]] = field(default_factory=lambda: defaultdict(dict))
    pools: dict[str, PoolTotals] = field(default_factory=dict)


class PositionLedger:
    """Per-account scaled deposits and debts, plus per-asset pool totals.

    Maps are keyed account -> asset -> scaled amount. Entries settle to zero
    but are never removed.
    """

    def __init__(self) -> None:
        self._state = LedgerState()

    # -- reads --------------------------------------------------------------

    def scaled_deposit(self, account: str, asset: str) -> int:
        return self._state.deposits.get(account, {}).get(asset, 0)

    def scaled_debt(self, account: str, asset: str) -> int:
        return self._state.debts.get(account, {}).get(asset, 0)

    def deposit_balance(self, account: str, asset: str, supply_index: int) -> int:
        return to_real(self.scaled_deposit(account, asset), supply_index)

    def debt_balance(self, account: str, asset: str, borrow_index: int) -> int:
        return to_real(self.scaled_debt(account, asset), borrow_index)

    def pool(self, asset: str) -> PoolTotals:
        if asset not in self._state.pools:
            self._state.pools[asset] = PoolTotals()
        return self._state.pools[asset]

    def available_liquidity(self, asset: str) -> int:
        return self.pool(asset).available_liquidity

    def accounts(self) -> list[str]:
        """Every account that ever held a deposit or debt."""
        seen = dict.fromkeys(self._state.deposits)
        seen.update(dict.fromkeys(self._state.debts))
        return list(seen)

    def has_open_positions(self, asset: str) -> bool:
        """True while any account holds a non-zero deposit or debt in asset."""
        for positions in (self._state.deposits, self._state.debts):
            for per_asset in positions.values():
                if per_asset.get(asset, 0) > 0:
                    return True
        pool = self._state.pools.get(asset)
        return pool is not None and (pool.total_deposits > 0 or pool.total_borrows > 0)

    # -- deposits -----------------------------------------------------------

    def credit_deposit(self, account: str, asset: str, amount: int, supply_index: int) -> int:
        """Add a real amount to an account's deposit; returns scaled units minted."""
        scaled = to_scaled(amount, supply_index)
        per_asset = self._state.deposits[account]
        per_asset[asset] = per_asset.get(asset, 0) + scaled
        return scaled

    def debit_deposit(self, account: str, asset: str, amount: int, supply_index: int) -> int:
        """Remove a real amount from an account's deposit; returns scaled units burned.

        The caller has already checked the real balance covers amount.
        """
        current = self.scaled_deposit(account, asset)
        if amount >= to_real(current, supply_index):
            burned = current
        else:
            burned = min(to_scaled(amount, supply_index, round_up=True), current)
        self._state.deposits[account][asset] = current - burned
        return burned

    # -- debts --------------------------------------------------------------

    def credit_debt(self, account: str, asset: str, amount: int, borrow_index: int) -> int:
        """Add a real amount of debt; returns scaled units minted."""
        scaled = to_scaled(amount, borrow_index, round_up=True)
        per_asset = self._state.debts[account]
        per_asset[asset] = per_asset.get(asset, 0) + scaled
        return scaled

    def debit_debt(self, account: str, asset: str, amount: int, borrow_index: int) -> int:
        """Remove a real amount of debt; returns scaled units burned."""
        current = self.scaled_debt(account, asset)
        if amount >= to_real(current, borrow_index):
            burned = current
        else:
            burned = min(to_scaled(amount, borrow_index), current)
        self._state.debts[account][asset] = current - burned
        return burned

    # -- pool totals --------------------------------------------------------

    def add_pool_deposits(self, asset: str, amount: int) -> None:
        pool = self.pool(asset)
        pool.total_deposits += amount

    def remove_pool_deposits(self, asset: str, amount: int) -> None:
        pool = self.pool(asset)
        pool.total_deposits = max(pool.total_deposits - amount, 0)

    def add_pool_borrows(self, asset: str, amount: int) -> None:
        pool = self.pool(asset)
        pool.total_borrows += amount

    def remove_pool_borrows(self, asset: str, amount: int) -> None:
        """Debit borrows; saturates because repaid interest exceeds recorded principal."""
        pool = self.pool(asset)
        pool.total_borrows = max(pool.total_borrows - amount, 0)

    # -- rollback -----------------------------------------------------------

    def snapshot(self) -> LedgerState:
        return copy.deepcopy(self._state)

    def restore(self, state: LedgerState) -> None:
        self._state = copy.deepcopy(state)
