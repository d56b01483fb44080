"""Interest accrual over per-asset indices.

Each market carries a supply index and a borrow index, both starting at 1.0.
Accrual compounds the per-second rate over the seconds elapsed since the
market's last update:

    rate_per_second = apr // seconds_per_year   (truncating)
    index' = index * rpow(WAD + rate_per_second, elapsed, WAD) // WAD

Per-second truncation is an accepted approximation: at realistic APRs the
shortfall is below 1e-9 of the nominal rate.
"""

from __future__ import annotations

from typing import Callable

from lending_engine.core.clock import Clock, system_clock
from lending_engine.core.fixed_point import mul_div, rpow
from lending_engine.data.constants import SECONDS_PER_YEAR, WAD
from lending_engine.data.models import EngineEvent, EventType, MarketConfig
from lending_engine.markets.registry import MarketRegistry

EventSink = Callable[[EngineEvent], None]


def compound_factor(annual_rate: int, elapsed: int, seconds_per_year: int = SECONDS_PER_YEAR) -> int:
    """Growth factor (WAD) for an APR compounded per second over elapsed seconds."""
    rate_per_second = annual_rate // seconds_per_year
    return rpow(WAD + rate_per_second, elapsed, WAD)


class InterestAccrual:
    """Advance market indices to the current time.

    Usage:
        accrual = InterestAccrual(registry, clock=clock, emit=events.append)
        accrual.accrue("WETH")
        accrual.accrue_all()
    """

    def __init__(
        self,
        registry: MarketRegistry,
        clock: Clock = system_clock,
        seconds_per_year: int = SECONDS_PER_YEAR,
        emit: EventSink | None = None,
    ) -> None:
        self.registry = registry
        self.clock = clock
        self.seconds_per_year = seconds_per_year
        self.emit = emit

    def accrue(self, asset: str) -> bool:
        """Accrue interest for one asset.

        Returns:
            True if indices were advanced; False for unknown/unsupported assets
            or when no time has elapsed.
        """
        if not self.registry.is_supported(asset):
            return False
        return self._accrue_market(self.registry.get(asset))

    def accrue_all(self) -> list[str]:
        """Accrue every supported market in registry order.

        Returns:
            Assets whose indices were advanced.
        """
        return [m.asset for m in self.registry.supported_markets() if self._accrue_market(m)]

    def _accrue_market(self, market: MarketConfig) -> bool:
        now = self.clock()
        if now <= market.last_update:
            return False
        elapsed = now - market.last_update

        supply_factor = compound_factor(market.supply_rate, elapsed, self.seconds_per_year)
        borrow_factor = compound_factor(market.borrow_rate, elapsed, self.seconds_per_year)

        market.supply_index = mul_div(market.supply_index, supply_factor, WAD)
        market.borrow_index = mul_div(market.borrow_index, borrow_factor, WAD)
        market.last_update = now

        if self.emit is not None:
            self.emit(
                EngineEvent(
                    event_type=EventType.INTEREST_ACCRUED,
                    timestamp=now,
                    data={
                        "asset": market.asset,
                        "supply_index": market.supply_index,
                        "borrow_index": market.borrow_index,
                    },
                )
            )
        return True
