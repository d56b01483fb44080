"""Lending operations and their external collaborators."""

from lending_engine.engine.governance import Governance
from lending_engine.engine.guard import ReentrancyGuard
from lending_engine.engine.operations import LendingEngine
from lending_engine.engine.transfer import AssetTransfer, InMemoryAssetTransfer

__all__ = [
    "AssetTransfer",
    "Governance",
    "InMemoryAssetTransfer",
    "LendingEngine",
    "ReentrancyGuard",
]
