"""Contracts between the engine and its external collaborators."""

from typing import Protocol, runtime_checkable

from .types import (
    ExecutionBudget,
    ExecutionResult,
    FilterResult,
    PoolRecord,
    Position,
    PriceSample,
    Side,
    TokenFacts,
    TradeOrder,
    TransactionPayload,
)


class Clock(Protocol):
    """Time source; injectable so polling loops are testable."""

    def now(self) -> float:
        """Current unix time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""
        ...


class TokenDataSource(Protocol):
    """Supplies decoded account data for the filter pipeline."""

    async def fetch(self, token: str, pool: PoolRecord) -> TokenFacts:
        """Return the current facts for a token; unknown fields stay None."""
        ...


class Filter(Protocol):
    """Admission predicate."""

    name: str

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        """Evaluate facts for a pool and return a verdict."""
        ...


class PriceSource(Protocol):
    """Current price of a token in quote units."""

    async def get_price(self, pool: PoolRecord) -> PriceSample | None:
        """Sample the pool price, or None when it cannot be read."""
        ...


@runtime_checkable
class TransactionBuilder(Protocol):
    """Signs swap transactions; opaque to the engine."""

    async def build(self, order: TradeOrder) -> TransactionPayload:
        """Build and sign a transaction for the order."""
        ...


@runtime_checkable
class TransactionExecutor(Protocol):
    """Lands a signed transaction on the ledger."""

    def order_fees(self) -> dict:
        """Fee fields to embed in every TradeOrder for this strategy."""
        ...

    async def execute(
        self, payload: TransactionPayload, budget: ExecutionBudget
    ) -> ExecutionResult:
        """Submit and confirm; must return within ``budget.timeout``."""
        ...


class WalletProbe(Protocol):
    """Read-only view of the trading wallet."""

    async def get_quote_balance(self) -> float:
        """Quote-asset balance in UI units."""
        ...

    async def get_token_balance(self, mint: str) -> float:
        """Balance of a token mint in UI units (0 when absent)."""
        ...

    async def is_healthy(self) -> bool:
        """Whether the network endpoint is reachable and synced."""
        ...


class AlertSink(Protocol):
    """Alert sink protocol."""

    async def push(self, message: str) -> None:
        """Push alert message."""
        ...


class Persistence(Protocol):
    """Trade journal."""

    async def record_transition(self, position: Position, reason: str) -> None:
        """Persist a Position after a state change."""
        ...

    async def record_execution(
        self,
        token: str,
        side: Side,
        attempt: int,
        result: ExecutionResult,
    ) -> None:
        """Persist one execution attempt."""
        ...
