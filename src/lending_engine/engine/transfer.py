"""Asset transfer collaborator.

pull moves funds from an account into the pool, push moves them out. Each
call either moves exactly the requested amount or raises with nothing moved.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Protocol

from lending_engine.core.errors import TransferFailed

TransferHook = Callable[[str, str, str, int], None]


class AssetTransfer(Protocol):
    def pull(self, asset: str, account: str, amount: int) -> None: ...

    def push(self, asset: str, account: str, amount: int) -> None: ...


class InMemoryAssetTransfer:
    """Wallet balances plus a pool custody account per asset.

    An optional hook runs after every successful transfer with
    (direction, asset, account, amount); it models token callbacks and is
    how re-entrancy is exercised.

    Usage:
        transfer = InMemoryAssetTransfer()
        transfer.mint("USDC", "0xalice", 1_000 * 10**6)
    """

    def __init__(self, hook: TransferHook | None = None) -> None:
        self._wallets: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._custody: dict[str, int] = defaultdict(int)
        self.hook = hook

    def mint(self, asset: str, account: str, amount: int) -> None:
        """Give an account funds out of thin air."""
        self._wallets[account][asset] += amount

    def balance_of(self, asset: str, account: str) -> int:
        return self._wallets[account][asset]

    def custody(self, asset: str) -> int:
        """Funds currently held by the pool."""
        return self._custody[asset]

    def pull(self, asset: str, account: str, amount: int) -> None:
        balance = self._wallets[account][asset]
        if balance < amount:
            raise TransferFailed(asset, account, amount, f"wallet holds only {balance}")
        self._wallets[account][asset] = balance - amount
        self._custody[asset] += amount
        try:
            self._run_hook("pull", asset, account, amount)
        except Exception:
            self._wallets[account][asset] += amount
            self._custody[asset] -= amount
            raise

    def push(self, asset: str, account: str, amount: int) -> None:
        held = self._custody[asset]
        if held < amount:
            raise TransferFailed(asset, account, amount, f"pool custody holds only {held}")
        self._custody[asset] = held - amount
        self._wallets[account][asset] += amount
        try:
            self._run_hook("push", asset, account, amount)
        except Exception:
            self._wallets[account][asset] -= amount
            self._custody[asset] += amount
            raise

    def _run_hook(self, direction: str, asset: str, account: str, amount: int) -> None:
        # A failing hook undoes the transfer that triggered it
        if self.hook is not None:
            self.hook(direction, asset, account, amount)
