"""Tests for the filter pipeline."""

from unittest.mock import AsyncMock

import pytest

from sniper.core.types import FilterResult, FilterVerdict, TokenFacts
from sniper.filters.authority import RenouncedFilter
from sniper.filters.pipeline import FilterPipeline


class SequenceFilter:
    """Returns a scripted verdict per round."""

    name = "sequence"

    def __init__(self, verdicts):
        self.verdicts = list(verdicts)
        self.calls = 0

    def evaluate(self, facts, pool):
        verdict = self.verdicts[min(self.calls, len(self.verdicts) - 1)]
        self.calls += 1
        return FilterResult(filter_name=self.name, verdict=verdict)


class RaisingFilter:
    name = "raising"

    def evaluate(self, facts, pool):
        raise RuntimeError("boom")


def data_source():
    return AsyncMock(fetch=AsyncMock(side_effect=lambda token, pool: TokenFacts(mint=token)))


P, F = FilterVerdict.PASS, FilterVerdict.FAIL


class TestRunRound:
    @pytest.mark.asyncio
    async def test_no_filters_passes(self, make_pool):
        round_ = await FilterPipeline([], data_source()).run_round("mint", make_pool("mint"))
        assert round_.passed

    @pytest.mark.asyncio
    async def test_fetch_failure_is_indeterminate(self, make_pool):
        source = AsyncMock(fetch=AsyncMock(side_effect=ConnectionError("rpc down")))
        pipeline = FilterPipeline([RenouncedFilter()], source)

        round_ = await pipeline.run_round("mint", make_pool("mint"))

        assert not round_.passed
        assert round_.results[0].verdict is FilterVerdict.INDETERMINATE

    @pytest.mark.asyncio
    async def test_raising_filter_does_not_abort_round(self, make_pool):
        ok = SequenceFilter([P])
        pipeline = FilterPipeline([RaisingFilter(), ok], data_source())

        round_ = await pipeline.run_round("mint", make_pool("mint"))

        assert ok.calls == 1
        assert [r.verdict for r in round_.results] == [FilterVerdict.INDETERMINATE, P]


class TestWaitForMatch:
    @pytest.mark.asyncio
    async def test_consecutive_passes_required_after_failure(self, clock, make_pool):
        flt = SequenceFilter([P, F, P, P])
        pipeline = FilterPipeline([flt], data_source())

        matched = await pipeline.wait_for_match(
            "mint", make_pool("mint"), clock, interval=1.0, duration=60.0, consecutive=2
        )

        assert matched
        # pass, fail (reset), pass, pass -> match on the fourth round only
        assert flt.calls == 4

    @pytest.mark.asyncio
    async def test_duration_elapses_without_streak(self, clock, make_pool):
        flt = SequenceFilter([P, F] * 20)
        pipeline = FilterPipeline([flt], data_source())

        matched = await pipeline.wait_for_match(
            "mint", make_pool("mint"), clock, interval=1.0, duration=5.0, consecutive=2
        )

        assert not matched
        assert flt.calls == 6
        assert clock.sleeps == [1.0] * 5

    @pytest.mark.asyncio
    async def test_single_match_returns_immediately(self, clock, make_pool):
        pipeline = FilterPipeline([SequenceFilter([P])], data_source())

        assert await pipeline.wait_for_match(
            "mint", make_pool("mint"), clock, interval=1.0, duration=5.0, consecutive=1
        )
        assert clock.sleeps == []


class TestFromSettings:
    def test_only_enabled_filters(self, make_settings):
        settings = make_settings(
            check_if_mint_is_renounced=True,
            check_if_burned=True,
            check_if_socials=False,
            min_pool_size=5,
            max_pool_size=50,
            check_holders=True,
            check_abnormal_distribution=True,
        )

        pipeline = FilterPipeline.from_settings(settings, data_source())

        assert [f.name for f in pipeline.filters] == [
            "renounced",
            "burned",
            "pool_size",
            "holders",
            "abnormal_distribution",
        ]

    def test_all_disabled(self, make_settings):
        assert FilterPipeline.from_settings(make_settings(), data_source()).filters == []
