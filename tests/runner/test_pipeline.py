"""Tests for the runner: ingestion gates, per-token workflows, replay."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
import structlog
from structlog.testing import capture_logs

from sniper.core.errors import StartupValidationError
from sniper.core.types import MarketRecord, PriceSample, TokenAccountUpdate
from sniper.runner.pipeline import (
    FileEventFeed,
    PriceBook,
    SniperRunner,
    configure_logging,
    log_banner,
)

QUOTE_MINT = "So11111111111111111111111111111111111111112"


@pytest.fixture
def engine():
    engine = AsyncMock()
    engine.monitors = {}
    engine.validate.return_value = True
    engine.on_pool_observed.return_value = True
    return engine


@pytest.fixture
def make_runner(clock, make_settings, engine):
    def _make(start_ts=1_700_000_000.0, **overrides):
        return SniperRunner(
            make_settings(**overrides), clock=clock, start_ts=start_ts, engine=engine
        )

    return _make


class ConcurrencyProbe:
    """Engine stand-in that records how many wallet workflows overlap."""

    def __init__(self):
        self.monitors = {}
        self.active = 0
        self.max_active = 0

    async def on_wallet_update(self, update):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1


class TestHandlePool:
    @pytest.mark.asyncio
    async def test_pools_opened_before_start_ignored(self, make_runner, make_pool, engine):
        runner = make_runner(start_ts=1_700_000_000.0)

        assert not runner.handle_pool("acc", make_pool("old", open_timestamp=1_700_000_000))
        await runner.drain()

        engine.on_pool_observed.assert_not_awaited()
        assert "old" not in runner.pool_cache

    @pytest.mark.asyncio
    async def test_new_pool_handed_to_engine_with_lag(self, make_runner, make_pool, engine, clock):
        runner = make_runner(start_ts=clock.now() - 100)
        pool = make_pool("fresh", open_timestamp=int(clock.now()) - 3)

        assert runner.handle_pool("acc", pool)
        await runner.drain()

        engine.on_pool_observed.assert_awaited_once_with(pool, 3.0)

    @pytest.mark.asyncio
    async def test_pool_cached_even_when_engine_rejects(self, make_runner, make_pool, engine, clock):
        engine.on_pool_observed.return_value = False
        runner = make_runner(start_ts=0)

        runner.handle_pool("acc", make_pool("laggy", open_timestamp=1))
        await runner.drain()

        assert "laggy" in runner.pool_cache
        assert not runner.handle_pool("acc-2", make_pool("laggy", open_timestamp=1))

    @pytest.mark.asyncio
    async def test_workflow_errors_contained(self, make_runner, make_pool, engine):
        engine.on_pool_observed.side_effect = RuntimeError("boom")
        runner = make_runner(start_ts=0)

        runner.handle_pool("acc", make_pool("mint"))
        await runner.drain()

        engine.on_pool_observed.assert_awaited_once()


class TestHandleWallet:
    @pytest.mark.asyncio
    async def test_quote_mint_skipped(self, make_runner, engine):
        runner = make_runner()

        assert not runner.handle_wallet(
            TokenAccountUpdate(account_id="a", mint=QUOTE_MINT, amount=1.0)
        )
        engine.on_wallet_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_same_token_serialized(self, clock, make_settings):
        probe = ConcurrencyProbe()
        runner = SniperRunner(make_settings(), clock=clock, start_ts=0, engine=probe)

        for amount in (1.0, 2.0, 3.0):
            runner.handle_wallet(TokenAccountUpdate(account_id="a", mint="mint", amount=amount))
        await runner.drain()

        assert probe.max_active == 1

    @pytest.mark.asyncio
    async def test_different_tokens_concurrent(self, clock, make_settings):
        probe = ConcurrencyProbe()
        runner = SniperRunner(make_settings(), clock=clock, start_ts=0, engine=probe)

        for mint in ("a", "b", "c"):
            runner.handle_wallet(TokenAccountUpdate(account_id=mint, mint=mint, amount=1.0))
        await runner.drain()

        assert probe.max_active == 3


class TestPriceBook:
    @pytest.mark.asyncio
    async def test_pushed_price_wins(self, clock, make_pool):
        fallback = AsyncMock()
        book = PriceBook(clock, fallback=fallback)
        book.push("pool-mint", 0.5, quote_reserve=20.0)

        sample = await book.get_price(make_pool("mint"))

        assert sample.price == 0.5
        assert sample.quote_reserve == 20.0
        fallback.get_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back(self, clock, make_pool):
        fallback = AsyncMock()
        fallback.get_price.return_value = PriceSample(price=2.0, ts=0)

        sample = await PriceBook(clock, fallback=fallback).get_price(make_pool("mint"))

        assert sample.price == 2.0

    @pytest.mark.asyncio
    async def test_no_price(self, clock, make_pool):
        assert await PriceBook(clock).get_price(make_pool("mint")) is None


class TestFileEventFeed:
    @pytest.mark.asyncio
    async def test_replays_every_event_type(self, make_runner, make_pool, tmp_path, clock):
        runner = make_runner(start_ts=0)
        pool = make_pool("mint")
        lines = [
            "# recorded session",
            json.dumps({"type": "price", "pool_id": pool.pool_id, "price": 0.01}),
            json.dumps({"type": "pool", "account_id": "acc", "pool": pool.model_dump()}),
            json.dumps({"type": "market", "market": {"market_id": "market-mint"}}),
            json.dumps({"type": "wallet", "update": {"account_id": "a", "mint": "mint", "amount": 5}}),
            json.dumps({"type": "sleep", "seconds": 2}),
            "{not json",
            json.dumps({"type": "telepathy"}),
            json.dumps({"type": "pool", "pool": {"pool_id": "missing-fields"}}),
        ]
        path = tmp_path / "events.jsonl"
        path.write_text("\n".join(lines) + "\n")

        delivered = await FileEventFeed(str(path), runner).run()

        assert delivered == 5
        assert runner.pools.qsize() == 1
        assert runner.markets.qsize() == 1
        assert runner.wallet.qsize() == 1
        assert (await runner.price_book.get_price(pool)).price == 0.01
        assert clock.sleeps == [2.0]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_failed_validation_aborts_start(self, make_runner, engine):
        engine.validate.return_value = False
        runner = make_runner()

        with pytest.raises(StartupValidationError):
            await runner.start()
        await runner.stop()

    @pytest.mark.asyncio
    async def test_consumers_route_events(self, make_runner, make_pool, engine):
        runner = make_runner(start_ts=0)
        await runner.start()
        pool = make_pool("mint")

        await runner.pools.put(("acc", pool))
        await runner.markets.put(("market-mint", MarketRecord(market_id="market-mint")))
        await runner.drain()

        engine.on_pool_observed.assert_awaited_once()
        assert await runner.market_cache.get("market-mint") is not None

        await runner.stop()
        engine.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_paper_replay_round_trip(self, clock, make_settings, make_pool, tmp_path):
        """Assembled paper engine buys a replayed pool and sells it at the monitor timeout."""
        settings = make_settings(
            dry_run=True,
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'journal.sqlite'}",
            price_check_interval=1,
            price_check_duration=2,
            force_sell_on_timeout=True,
        )
        runner = SniperRunner(settings, clock=clock, start_ts=0)
        pool = make_pool("paper-mint")
        path = tmp_path / "events.jsonl"
        path.write_text(
            json.dumps({"type": "price", "pool_id": pool.pool_id, "price": 0.01})
            + "\n"
            + json.dumps({"type": "pool", "pool": pool.model_dump()})
            + "\n"
        )

        await runner.start()
        try:
            await FileEventFeed(str(path), runner).run()
            await runner.drain()

            wallet = runner.engine.wallet
            assert wallet.holding("paper-mint") is None
            assert wallet.quote_balance < settings.paper_quote_balance
            assert runner.engine.positions.count_active() == 0

            transitions = await runner.journal.load_transitions("paper-mint")
            assert [t["state"] for t in transitions] == ["entering", "open", "exiting", "closed"]
        finally:
            await runner.stop()


class TestLogging:
    def test_banner_groups(self, make_settings):
        with capture_logs() as logs:
            log_banner(make_settings())

        assert [entry["event"] for entry in logs] == [
            "Bot",
            "Buy",
            "Sell",
            "Filters",
            "Technical analysis",
        ]

    def test_banner_snipe_list(self, make_settings):
        with capture_logs() as logs:
            log_banner(make_settings(use_snipe_list=True))

        assert "Snipe list" in [entry["event"] for entry in logs]

    def test_configure_logging_filters_level(self):
        try:
            configure_logging("warning")
            logger = structlog.get_logger("test")
            with capture_logs() as logs:
                logger.warning("kept")
            assert logs[0]["log_level"] == "warning"
        finally:
            structlog.reset_defaults()
