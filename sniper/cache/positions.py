"""Keyed store of positions and their price history."""

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from ..core.errors import InvalidTransition
from ..core.types import TRANSITIONS, PoolRecord, Position, PositionState, PriceSample

logger = structlog.get_logger(__name__)


class PositionCache:
    """Positions keyed by token mint, with per-key locking.

    Every operation on a token runs under that token's lock, so operations
    for the same token are serialized while different tokens never wait on
    each other. Terminal positions are dropped by ``remove`` which also
    discards the price series.
    """

    def __init__(self, series_length: int = 64) -> None:
        """Initialize the cache.

        Args:
            series_length: Rolling window kept per position
        """
        self.series_length = max(2, series_length)
        self._positions: dict[str, Position] = {}
        self._series: dict[str, deque[PriceSample]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, token: str) -> asyncio.Lock:
        lock = self._locks.get(token)
        if lock is None:
            lock = self._locks[token] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def locked(self, token: str) -> AsyncIterator[None]:
        """Hold a token's lock across several operations."""
        async with self._lock_for(token):
            yield

    async def get(self, token: str) -> Position | None:
        async with self._lock_for(token):
            position = self._positions.get(token)
            return position.model_copy() if position else None

    async def save(self, token: str, pool: PoolRecord) -> bool:
        """Reserve a slot for a token.

        Returns:
            True if this call created the entry, False if one already existed
        """
        async with self._lock_for(token):
            if token in self._positions:
                return False
            self._positions[token] = Position(token=token, pool=pool)
            self._series[token] = deque(maxlen=self.series_length)
            logger.debug("Position reserved", token_mint=token, pool_id=pool.pool_id)
            return True

    async def update_state(
        self, token: str, new_state: PositionState, **fields
    ) -> Position:
        """Move a position to a new state, applying any extra field updates.

        Raises:
            KeyError: If the token is not tracked
            InvalidTransition: If the move is not allowed from the current state
        """
        async with self._lock_for(token):
            position = self._positions[token]
            if new_state not in TRANSITIONS[position.state]:
                raise InvalidTransition(token, position.state.value, new_state.value)
            updated = position.model_copy(update={"state": new_state, **fields})
            self._positions[token] = updated
            logger.info(
                "Position state changed",
                token_mint=token,
                previous=position.state.value,
                state=new_state.value,
            )
            return updated.model_copy()

    async def update(self, token: str, **fields) -> Position | None:
        """Update non-state fields of a tracked position."""
        async with self._lock_for(token):
            position = self._positions.get(token)
            if position is None:
                return None
            updated = position.model_copy(update=fields)
            self._positions[token] = updated
            return updated.model_copy()

    async def remove(self, token: str) -> Position | None:
        async with self._lock_for(token):
            self._series.pop(token, None)
            return self._positions.pop(token, None)

    async def append_price(self, token: str, sample: PriceSample) -> list[PriceSample]:
        """Append a sample while the position is open and return the series."""
        async with self._lock_for(token):
            position = self._positions.get(token)
            if position is None or position.state is not PositionState.OPEN:
                return list(self._series.get(token, ()))
            series = self._series[token]
            series.append(sample)
            if position.highest_price is None or sample.price > position.highest_price:
                self._positions[token] = position.model_copy(
                    update={"highest_price": sample.price}
                )
            return list(series)

    async def series(self, token: str) -> list[PriceSample]:
        async with self._lock_for(token):
            return list(self._series.get(token, ()))

    def count_active(self) -> int:
        """Number of non-terminal positions (including pending reservations)."""
        return sum(1 for p in self._positions.values() if p.active)

    def tokens(self) -> list[str]:
        return list(self._positions)
