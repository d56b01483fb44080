"""Governance collaborator.

Supplies the fund-manager set and the pause flag. Role administration
itself (owner, auditor approval, revocation policy) lives outside the
engine; this class only answers the questions the engine asks.
"""

from __future__ import annotations

from typing import Iterable


class Governance:
    """Fund-manager membership and pause state.

    Usage:
        governance = Governance(fund_managers=["0xmanager"])
        governance.pause()
        governance.is_fund_manager("0xmanager")
    """

    def __init__(self, fund_managers: Iterable[str] = ()) -> None:
        self._fund_managers: set[str] = set(fund_managers)
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        self._paused = True

    def unpause(self) -> None:
        self._paused = False

    def is_fund_manager(self, account: str) -> bool:
        return account in self._fund_managers

    def add_fund_manager(self, account: str) -> None:
        self._fund_managers.add(account)

    def revoke_fund_manager(self, account: str) -> None:
        self._fund_managers.discard(account)

    @property
    def fund_managers(self) -> frozenset[str]:
        return frozenset(self._fund_managers)
