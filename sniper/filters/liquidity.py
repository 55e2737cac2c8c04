"""Liquidity checks: burned LP and pool size bounds."""

import structlog

from ..core.types import FilterResult, FilterVerdict, PoolRecord, TokenFacts

logger = structlog.get_logger(__name__)


class BurnFilter:
    """Pass only when the pool's LP tokens have been burned."""

    name = "burned"

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if facts.lp_burned is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="LP supply unknown",
            )
        if not facts.lp_burned:
            return FilterResult(
                filter_name=self.name, verdict=FilterVerdict.FAIL, reason="LP not burned"
            )
        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)


class PoolSizeFilter:
    """Pass when the quote reserve lies within the configured bounds.

    A bound of zero disables that side of the check.
    """

    name = "pool_size"

    def __init__(self, min_size: float = 0.0, max_size: float = 0.0) -> None:
        self.min_size = min_size
        self.max_size = max_size

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        size = facts.pool_quote_reserve
        if size is None:
            size = pool.quote_reserve
        if size is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="Pool size unknown",
            )

        if self.max_size and size > self.max_size:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.FAIL,
                reason=f"Pool size {size:g} > {self.max_size:g}",
            )
        if self.min_size and size < self.min_size:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.FAIL,
                reason=f"Pool size {size:g} < {self.min_size:g}",
            )

        logger.debug("Pool size within bounds", mint=pool.base_mint, size=size)
        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)
