"""Caches for discovered pools and markets."""

from collections.abc import Awaitable, Callable

import structlog

from ..core.types import MarketRecord, PoolRecord

logger = structlog.get_logger(__name__)

MarketFetcher = Callable[[str], Awaitable[MarketRecord | None]]


class PoolCache:
    """Pool records keyed by base mint; the first observed pool wins."""

    def __init__(self) -> None:
        self._by_mint: dict[str, tuple[str, PoolRecord]] = {}

    def save(self, account_id: str, pool: PoolRecord) -> bool:
        """Record a pool unless one is already known for its base mint.

        Returns:
            True if the record was stored
        """
        if pool.base_mint in self._by_mint:
            return False
        self._by_mint[pool.base_mint] = (account_id, pool)
        logger.debug("Caching new pool", mint=pool.base_mint, pool_id=account_id)
        return True

    def get(self, mint: str) -> PoolRecord | None:
        entry = self._by_mint.get(mint)
        return entry[1] if entry else None

    def __contains__(self, mint: str) -> bool:
        return mint in self._by_mint

    def __len__(self) -> int:
        return len(self._by_mint)


class MarketCache:
    """Market records keyed by market account id.

    Missing markets are fetched through ``fetcher`` when one is configured
    and cached for later swaps.
    """

    def __init__(self, fetcher: MarketFetcher | None = None) -> None:
        self._markets: dict[str, MarketRecord] = {}
        self._fetcher = fetcher

    def save(self, market_id: str, market: MarketRecord) -> None:
        if market_id not in self._markets:
            logger.debug("Caching new market", market_id=market_id)
            self._markets[market_id] = market

    async def get(self, market_id: str) -> MarketRecord | None:
        market = self._markets.get(market_id)
        if market is not None or self._fetcher is None:
            return market

        logger.debug("Fetching market", market_id=market_id)
        market = await self._fetcher(market_id)
        if market is not None:
            self.save(market_id, market)
        return market

    def __len__(self) -> int:
        return len(self._markets)
