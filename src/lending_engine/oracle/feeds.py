"""Price feed collaborators.

Two feed shapes are supported:
- Primary (round-based, Chainlink style): ``latest_answer() -> FeedAnswer``
- Fallback (publish-time based, Pyth style):
  ``price_no_older_than(asset_id, max_age) -> FallbackPrice``

Feeds may raise on any failure; PriceOracle treats that as "source
unavailable". Manual feeds are in-memory and settable, for simulation and
tests. The web3 adapters read on-chain contracts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from web3 import Web3
from web3.contract import Contract

from lending_engine.data.constants import CHAINLINK_AGGREGATOR_ABI, PYTH_ABI


@dataclass(frozen=True)
class FeedAnswer:
    """Raw primary feed answer."""

    value: int
    updated_at: int  # unix seconds
    round_id: int  # 0 means no valid round
    decimals: int


@dataclass(frozen=True)
class FallbackPrice:
    """Raw fallback feed price: real price = price * 10**expo."""

    price: int
    expo: int
    publish_time: int


class PrimaryFeed(Protocol):
    def latest_answer(self) -> FeedAnswer: ...


class FallbackFeed(Protocol):
    def price_no_older_than(self, asset_id: str, max_age: int) -> FallbackPrice: ...


class FeedUnavailable(Exception):
    """Raised by manual feeds that have been switched off."""

    pass


class ManualPrimaryFeed:
    """Settable round-based feed.

    Usage:
        feed = ManualPrimaryFeed(decimals=8)
        feed.set_price(2000_00000000, updated_at=clock())
    """

    def __init__(self, decimals: int = 8) -> None:
        self.decimals = decimals
        self._answer: FeedAnswer | None = None
        self._round_id = 0
        self.fail = False

    def set_price(self, value: int, updated_at: int, round_id: int | None = None) -> None:
        """Publish a new round. round_id=0 simulates an invalid round."""
        if round_id is None:
            self._round_id += 1
            round_id = self._round_id
        self._answer = FeedAnswer(
            value=value,
            updated_at=updated_at,
            round_id=round_id,
            decimals=self.decimals,
        )

    def latest_answer(self) -> FeedAnswer:
        if self.fail or self._answer is None:
            raise FeedUnavailable("primary feed has no answer")
        return self._answer


class ManualFallbackFeed:
    """Settable publish-time feed keyed by asset id."""

    def __init__(self) -> None:
        self._prices: dict[str, FallbackPrice] = {}
        self.fail = False

    def set_price(self, asset_id: str, price: int, expo: int, publish_time: int) -> None:
        self._prices[asset_id] = FallbackPrice(price=price, expo=expo, publish_time=publish_time)

    def price_no_older_than(self, asset_id: str, max_age: int) -> FallbackPrice:
        if self.fail or asset_id not in self._prices:
            raise FeedUnavailable(f"fallback feed has no price for {asset_id}")
        return self._prices[asset_id]


class ChainlinkFeed:
    """Primary feed backed by a Chainlink AggregatorV3 contract."""

    def __init__(self, web3: Web3, address: str) -> None:
        self.web3 = web3
        self._contract: Contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=CHAINLINK_AGGREGATOR_ABI,
        )
        self._decimals: int | None = None

    @property
    def decimals(self) -> int:
        if self._decimals is None:
            self._decimals = int(self._contract.functions.decimals().call())
        return self._decimals

    def latest_answer(self) -> FeedAnswer:
        round_id, answer, _started_at, updated_at, _answered_in = (
            self._contract.functions.latestRoundData().call()
        )
        return FeedAnswer(
            value=int(answer),
            updated_at=int(updated_at),
            round_id=int(round_id),
            decimals=self.decimals,
        )


class PythFeed:
    """Fallback feed backed by a Pyth contract.

    The contract itself reverts when the price is older than max_age; the
    oracle re-checks publish_time regardless.
    """

    def __init__(self, web3: Web3, address: str) -> None:
        self.web3 = web3
        self._contract: Contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=PYTH_ABI,
        )

    def price_no_older_than(self, asset_id: str, max_age: int) -> FallbackPrice:
        feed_id = bytes.fromhex(asset_id.removeprefix("0x"))
        price, _conf, expo, publish_time = self._contract.functions.getPriceNoOlderThan(
            feed_id, max_age
        ).call()
        return FallbackPrice(price=int(price), expo=int(expo), publish_time=int(publish_time))
