"""Holder distribution checks."""

from collections import Counter

import structlog

from ..core.types import FilterResult, FilterVerdict, HolderShare, PoolRecord, TokenFacts

logger = structlog.get_logger(__name__)


def _outside_holders(facts: TokenFacts, pool: PoolRecord) -> list[HolderShare]:
    """Top holders excluding the pool's own reserve account."""
    return [
        h
        for h in facts.top_holders or []
        if h.account != pool.base_vault and h.owner != pool.pool_id
    ]


class HolderConcentrationFilter:
    """Require enough holders and cap the share held by the largest ones.

    Either side can be switched off; with both off the filter always passes.
    """

    name = "holders"

    def __init__(
        self,
        min_holders: int | None = None,
        top_count: int = 10,
        max_top_pct: float | None = None,
    ) -> None:
        self.min_holders = min_holders
        self.top_count = top_count
        self.max_top_pct = max_top_pct

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if self.min_holders is not None:
            if facts.holder_count is None:
                return FilterResult(
                    filter_name=self.name,
                    verdict=FilterVerdict.INDETERMINATE,
                    reason="Holder count unknown",
                )
            if facts.holder_count < self.min_holders:
                return FilterResult(
                    filter_name=self.name,
                    verdict=FilterVerdict.FAIL,
                    reason=f"Too few holders: {facts.holder_count} < {self.min_holders}",
                )

        if self.max_top_pct is not None:
            if facts.top_holders is None:
                return FilterResult(
                    filter_name=self.name,
                    verdict=FilterVerdict.INDETERMINATE,
                    reason="Largest holders unknown",
                )
            top = sorted(
                _outside_holders(facts, pool), key=lambda h: h.pct, reverse=True
            )[: self.top_count]
            share = sum(h.pct for h in top)
            if share > self.max_top_pct:
                return FilterResult(
                    filter_name=self.name,
                    verdict=FilterVerdict.FAIL,
                    reason=f"Top {len(top)} holders own {share:.1f}% > {self.max_top_pct:g}%",
                )

        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)


class AbnormalDistributionFilter:
    """Reject tokens where many wallets hold exactly the same balance.

    Identical balances across several non-pool holders are the footprint of
    bundled launch wallets.
    """

    name = "abnormal_distribution"

    def __init__(self, max_equal_holders: int = 3) -> None:
        self.max_equal_holders = max_equal_holders

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if facts.top_holders is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="Largest holders unknown",
            )

        amounts = Counter(h.amount for h in _outside_holders(facts, pool) if h.amount > 0)
        if amounts:
            amount, count = amounts.most_common(1)[0]
            if count > self.max_equal_holders:
                logger.debug(
                    "Abnormal distribution detected",
                    mint=pool.base_mint,
                    amount=amount,
                    holders=count,
                )
                return FilterResult(
                    filter_name=self.name,
                    verdict=FilterVerdict.FAIL,
                    reason=f"{count} holders hold exactly {amount:g}",
                )

        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)
