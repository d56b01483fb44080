"""Dual-source price resolution.

resolve_price tries the primary feed first and falls back to the secondary
feed. Each source is read into a "price or unavailable" outcome; a feed that
raises, answers non-positive, or is stale is simply unavailable. Accepted
prices are normalized to 18-decimal USD per unit before being returned, so
callers never see source-specific scaling.

Resolution reads external state but never mutates the ledger.
"""

from __future__ import annotations

from loguru import logger

from lending_engine.core.clock import Clock, system_clock
from lending_engine.core.errors import AllPriceSourcesUnavailable
from lending_engine.core.fixed_point import normalize
from lending_engine.data.constants import (
    DEFAULT_MAX_FALLBACK_AGE,
    DEFAULT_MAX_PRIMARY_DELAY,
    WAD_DECIMALS,
)
from lending_engine.data.models import OracleConfig
from lending_engine.oracle.feeds import FallbackPrice, FeedAnswer


def normalize_exponent(price: int, expo: int) -> int:
    """Scale ``price * 10**expo`` to 18 decimals, flooring on down-scale."""
    shift = WAD_DECIMALS + expo
    if shift >= 0:
        return price * 10**shift
    return price // 10 ** (-shift)


class PriceOracle:
    """Resolve asset prices from a primary feed with a fallback.

    Usage:
        oracle = PriceOracle(clock=clock)
        price = oracle.resolve_price(market.oracle)  # 18-decimal USD
    """

    def __init__(
        self,
        clock: Clock = system_clock,
        max_primary_delay: int = DEFAULT_MAX_PRIMARY_DELAY,
        max_fallback_age: int = DEFAULT_MAX_FALLBACK_AGE,
    ) -> None:
        """Initialize the oracle.

        Args:
            clock: Time source for staleness checks.
            max_primary_delay: Maximum age of a primary answer (seconds).
            max_fallback_age: Maximum age of a fallback price (seconds).
        """
        self.clock = clock
        self.max_primary_delay = max_primary_delay
        self.max_fallback_age = max_fallback_age

    def resolve_price(self, cfg: OracleConfig) -> int:
        """Return the current price in 18-decimal USD per unit.

        Raises:
            AllPriceSourcesUnavailable: If neither source yields an accepted price.
        """
        now = self.clock()

        price = self._read_primary(cfg, now)
        if price is not None:
            return price

        price = self._read_fallback(cfg, now)
        if price is not None:
            return price

        logger.error(f"No acceptable price for {cfg.fallback_asset_id}")
        raise AllPriceSourcesUnavailable(cfg.fallback_asset_id)

    def _read_primary(self, cfg: OracleConfig, now: int) -> int | None:
        try:
            answer: FeedAnswer = cfg.primary.latest_answer()
        except Exception as e:
            logger.warning(f"Primary feed for {cfg.fallback_asset_id} unavailable: {e}")
            return None

        if answer.value <= 0:
            logger.warning(
                f"Primary feed for {cfg.fallback_asset_id} returned non-positive {answer.value}"
            )
            return None
        if answer.round_id == 0:
            logger.warning(f"Primary feed for {cfg.fallback_asset_id} reported no valid round")
            return None
        if now - answer.updated_at > self.max_primary_delay:
            logger.warning(
                f"Primary feed for {cfg.fallback_asset_id} stale: "
                f"updated {now - answer.updated_at}s ago"
            )
            return None

        normalized = normalize(answer.value, answer.decimals)
        if normalized == 0:
            logger.warning(
                f"Primary feed for {cfg.fallback_asset_id} answer {answer.value} "
                f"truncates to zero at 18 decimals"
            )
            return None
        return normalized

    def _read_fallback(self, cfg: OracleConfig, now: int) -> int | None:
        try:
            quote: FallbackPrice = cfg.fallback.price_no_older_than(
                cfg.fallback_asset_id, self.max_fallback_age
            )
        except Exception as e:
            logger.warning(f"Fallback feed for {cfg.fallback_asset_id} unavailable: {e}")
            return None

        if now - quote.publish_time > self.max_fallback_age:
            logger.warning(
                f"Fallback feed for {cfg.fallback_asset_id} too old: "
                f"published {now - quote.publish_time}s ago"
            )
            return None
        if quote.price <= 0:
            logger.warning(
                f"Fallback feed for {cfg.fallback_asset_id} returned non-positive {quote.price}"
            )
            return None

        normalized = normalize_exponent(quote.price, quote.expo)
        if normalized == 0:
            # Price below 1e-18 USD truncates to nothing
            return None
        logger.debug(f"Using fallback price for {cfg.fallback_asset_id}")
        return normalized
