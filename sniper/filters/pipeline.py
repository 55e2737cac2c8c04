"""Admission filter pipeline."""

import structlog

from ..cache.lists import AddressListCache
from ..config.settings import AppSettings
from ..core.interfaces import Clock, Filter, TokenDataSource
from ..core.timing import interval_ticks
from ..core.types import FilterResult, FilterRound, FilterVerdict, PoolRecord
from .authority import FreezableFilter, RenouncedFilter
from .distribution import AbnormalDistributionFilter, HolderConcentrationFilter
from .liquidity import BurnFilter, PoolSizeFilter
from .metadata import BlacklistFilter, MutableFilter, SocialsFilter

logger = structlog.get_logger(__name__)


class FilterPipeline:
    """AND of every enabled predicate, evaluated on a fresh snapshot per round."""

    def __init__(self, filters: list[Filter], data_source: TokenDataSource) -> None:
        self.filters = filters
        self.data_source = data_source

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        data_source: TokenDataSource,
        blacklist: AddressListCache | None = None,
    ) -> "FilterPipeline":
        """Build the pipeline from the filter toggles; disabled filters are skipped."""
        filters: list[Filter] = []

        if settings.check_if_mint_is_renounced:
            filters.append(RenouncedFilter())
        if settings.check_if_freezable:
            filters.append(FreezableFilter())
        if settings.check_if_burned:
            filters.append(BurnFilter())
        if settings.check_if_mutable:
            filters.append(MutableFilter())
        if settings.check_if_socials:
            filters.append(SocialsFilter())
        if blacklist is not None:
            filters.append(BlacklistFilter(blacklist))
        if settings.min_pool_size or settings.max_pool_size:
            filters.append(
                PoolSizeFilter(settings.min_pool_size, settings.max_pool_size)
            )
        if settings.check_holders or settings.check_token_distribution:
            filters.append(
                HolderConcentrationFilter(
                    min_holders=settings.min_holders if settings.check_holders else None,
                    top_count=settings.top_holders_count,
                    max_top_pct=(
                        settings.max_top_holders_pct
                        if settings.check_token_distribution
                        else None
                    ),
                )
            )
        if settings.check_abnormal_distribution:
            filters.append(AbnormalDistributionFilter(settings.max_equal_holders))

        logger.info("Filter pipeline assembled", filters=[f.name for f in filters])
        return cls(filters, data_source)

    async def run_round(self, token: str, pool: PoolRecord) -> FilterRound:
        """Evaluate every filter once against a single snapshot.

        A data-source failure or a raising filter counts as an indeterminate
        result for this round only.
        """
        if not self.filters:
            return FilterRound()

        try:
            facts = await self.data_source.fetch(token, pool)
        except Exception as e:
            logger.warning("Failed to fetch token facts", token_mint=token, error=str(e))
            return FilterRound(
                results=[
                    FilterResult(
                        filter_name=f.name,
                        verdict=FilterVerdict.INDETERMINATE,
                        reason=f"Data unavailable: {e}",
                    )
                    for f in self.filters
                ]
            )

        results = []
        for f in self.filters:
            try:
                results.append(f.evaluate(facts, pool))
            except Exception as e:
                logger.error("Filter raised", filter=f.name, token_mint=token, error=str(e))
                results.append(
                    FilterResult(
                        filter_name=f.name,
                        verdict=FilterVerdict.INDETERMINATE,
                        reason=str(e),
                    )
                )

        round_ = FilterRound(results=results)
        logger.debug(
            "Filter round evaluated",
            token_mint=token,
            passed=round_.passed,
            failures=[f"{r.filter_name}: {r.reason}" for r in round_.failures],
        )
        return round_

    async def wait_for_match(
        self,
        token: str,
        pool: PoolRecord,
        clock: Clock,
        interval: float,
        duration: float,
        consecutive: int,
    ) -> bool:
        """Poll until ``consecutive`` rounds in a row pass.

        Any failing round resets the streak. Returns False when the duration
        runs out first.
        """
        required = max(1, consecutive)
        streak = 0

        async for _tick in interval_ticks(clock, interval, duration):
            round_ = await self.run_round(token, pool)
            if round_.passed:
                streak += 1
                logger.debug(
                    "Filter match", token_mint=token, streak=streak, required=required
                )
                if streak >= required:
                    return True
            else:
                streak = 0

        logger.info(
            "Filters did not match in time", token_mint=token, duration=duration
        )
        return False
