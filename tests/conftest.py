"""Shared fixtures: a deterministic clock and record factories."""

import asyncio

import pytest

from sniper.config.settings import AppSettings
from sniper.core.types import PoolRecord, PriceSample


class FakeClock:
    """Clock whose time only moves when someone sleeps."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.t = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds
        await asyncio.sleep(0)


class ScriptedPriceSource:
    """Returns queued prices in order, repeating the last one."""

    def __init__(self, clock: FakeClock, prices: list[float]) -> None:
        self.clock = clock
        self.prices = list(prices)
        self.calls = 0

    async def get_price(self, pool: PoolRecord) -> PriceSample | None:
        self.calls += 1
        if not self.prices:
            return None
        price = self.prices.pop(0) if len(self.prices) > 1 else self.prices[0]
        return PriceSample(price=price, ts=self.clock.now(), quote_reserve=10.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_pool():
    def _make(mint: str = "TokenMint1111", open_timestamp: int = 1_700_000_000, **kwargs):
        fields = {
            "pool_id": f"pool-{mint}",
            "base_mint": mint,
            "quote_mint": "So11111111111111111111111111111111111111112",
            "lp_mint": f"lp-{mint}",
            "market_id": f"market-{mint}",
            "base_vault": f"base-vault-{mint}",
            "quote_vault": f"quote-vault-{mint}",
            "open_timestamp": open_timestamp,
            "base_reserve": 1000.0,
            "quote_reserve": 10.0,
        }
        fields.update(kwargs)
        return PoolRecord(**fields)

    return _make


@pytest.fixture
def make_prices(clock):
    def _make(prices: list[float]) -> ScriptedPriceSource:
        return ScriptedPriceSource(clock, prices)

    return _make


@pytest.fixture
def make_settings():
    def _make(**overrides) -> AppSettings:
        fields = {
            "env": "dev",
            "rpc_url": "https://rpc.test",
            "database_url": "",
            "check_if_mint_is_renounced": False,
            "check_if_burned": False,
            "min_pool_size": 0,
            "max_pool_size": 0,
            "filter_check_interval": 1.0,
            "filter_check_duration": 10.0,
            "consecutive_filter_matches": 1,
            "price_check_interval": 1.0,
            "price_check_duration": 10.0,
            "max_buy_retries": 3,
            "max_sell_retries": 3,
            "quote_amount": 0.1,
        }
        fields.update(overrides)
        return AppSettings(_env_file=None, **fields)

    return _make
