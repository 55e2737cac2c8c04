"""Core data types for the sniper engine."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PositionState(str, Enum):
    """Lifecycle states of a tracked position."""

    NONE = "none"
    ENTERING = "entering"
    OPEN = "open"
    EXITING = "exiting"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PositionState.CLOSED, PositionState.FAILED)


# Allowed forward moves; anything else is a programming error.
TRANSITIONS: dict[PositionState, frozenset[PositionState]] = {
    PositionState.NONE: frozenset({PositionState.ENTERING, PositionState.FAILED}),
    PositionState.ENTERING: frozenset({PositionState.OPEN, PositionState.FAILED}),
    PositionState.OPEN: frozenset(
        {PositionState.EXITING, PositionState.CLOSED, PositionState.FAILED}
    ),
    PositionState.EXITING: frozenset({PositionState.CLOSED, PositionState.FAILED}),
    PositionState.CLOSED: frozenset(),
    PositionState.FAILED: frozenset(),
}


class Side(str, Enum):
    """Trade direction relative to the quote asset."""

    BUY = "buy"
    SELL = "sell"


class PoolRecord(BaseModel):
    """Decoded AMM pool state, immutable once cached."""

    model_config = ConfigDict(frozen=True)

    pool_id: str = Field(description="Pool account address")
    base_mint: str = Field(description="Mint of the traded token")
    quote_mint: str = Field(description="Mint of the quote asset")
    lp_mint: str | None = Field(default=None, description="LP token mint")
    market_id: str | None = Field(default=None, description="Order-book market id")
    base_vault: str | None = Field(default=None, description="Base reserve account")
    quote_vault: str | None = Field(default=None, description="Quote reserve account")
    base_decimals: int = Field(default=9, description="Base mint decimals")
    quote_decimals: int = Field(default=9, description="Quote mint decimals")
    open_timestamp: int = Field(description="Pool open time (unix seconds)")
    base_reserve: float | None = Field(
        default=None, description="Base reserve at discovery, UI units"
    )
    quote_reserve: float | None = Field(
        default=None, description="Quote reserve at discovery, UI units"
    )


class MarketRecord(BaseModel):
    """Decoded market metadata used by the transaction builder."""

    model_config = ConfigDict(frozen=True)

    market_id: str = Field(description="Market account address")
    bids: str | None = Field(default=None, description="Bids account")
    asks: str | None = Field(default=None, description="Asks account")
    event_queue: str | None = Field(default=None, description="Event queue account")


class TokenAccountUpdate(BaseModel):
    """Decoded wallet token-account balance change."""

    account_id: str = Field(description="Token account address")
    mint: str = Field(description="Mint held by the account")
    owner: str | None = Field(default=None, description="Account owner")
    amount: float = Field(description="Balance in UI units")


class PriceSample(BaseModel):
    """A single observed price for an open position."""

    price: float = Field(description="Price in quote units per token")
    ts: float = Field(description="Observation time (unix seconds)")
    quote_reserve: float | None = Field(
        default=None, description="Pool quote reserve at observation"
    )


class Position(BaseModel):
    """Engine-side view of one token's trade lifecycle."""

    token: str = Field(description="Token mint")
    pool: PoolRecord = Field(description="Pool the position trades against")
    state: PositionState = Field(default=PositionState.NONE)
    entry_price: float | None = Field(default=None)
    entry_timestamp: float | None = Field(default=None)
    quote_amount_spent: float = Field(default=0.0)
    token_balance: float | None = Field(
        default=None, description="Last balance reported by the wallet feed"
    )
    highest_price: float | None = Field(default=None)
    selling_suppressed: bool = Field(
        default=False, description="Set once the skip-selling loss threshold is hit"
    )
    exit_price: float | None = Field(default=None)
    exit_reason: str | None = Field(default=None)
    failure_reason: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def active(self) -> bool:
        return not self.state.terminal


class FilterVerdict(str, Enum):
    """Outcome of a single admission predicate."""

    PASS = "pass"
    FAIL = "fail"
    INDETERMINATE = "indeterminate"


class FilterResult(BaseModel):
    """Per-predicate outcome within one evaluation round."""

    filter_name: str
    verdict: FilterVerdict
    reason: str = ""

    @property
    def passed(self) -> bool:
        return self.verdict is FilterVerdict.PASS


class FilterRound(BaseModel):
    """Aggregate of every enabled predicate for one round."""

    results: list[FilterResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[FilterResult]:
        return [r for r in self.results if not r.passed]


class HolderShare(BaseModel):
    """One large token account and its share of supply."""

    account: str
    owner: str | None = None
    amount: float
    pct: float = Field(description="Share of total supply, percent")


class TokenFacts(BaseModel):
    """Externally decoded account data the filters evaluate.

    ``None`` means the fact is not yet known; predicates report that as
    indeterminate rather than guessing.
    """

    mint: str
    mint_authority_renounced: bool | None = None
    freeze_authority_absent: bool | None = None
    lp_burned: bool | None = None
    metadata_mutable: bool | None = None
    update_authority: str | None = None
    social_links: list[str] | None = None
    pool_quote_reserve: float | None = None
    holder_count: int | None = None
    top_holders: list[HolderShare] | None = None


class TradeOrder(BaseModel):
    """Everything the transaction builder needs for one swap."""

    token: str
    pool: PoolRecord
    market: MarketRecord | None = None
    side: Side
    amount_in: float = Field(description="Input amount in UI units")
    min_amount_out: float = Field(description="Slippage-bounded minimum output")
    slippage_pct: float
    compute_unit_limit: int | None = None
    compute_unit_price: int | None = None
    relay_tip: float = 0.0


class TransactionPayload(BaseModel):
    """Signed, submittable transaction produced by the builder."""

    tx_base64: str
    signature: str
    last_valid_block_height: int | None = None


class ExecutionBudget(BaseModel):
    """Bounds on a single execution attempt."""

    timeout: float = Field(default=60.0, description="Hard timeout in seconds")
    poll_interval: float = Field(default=2.0, description="Confirmation poll period")


class ExecutionResult(BaseModel):
    """Outcome of one execution attempt: confirmed or failed with a reason."""

    confirmed: bool
    signature: str | None = None
    error: str | None = None
    retryable: bool = False

    @classmethod
    def ok(cls, signature: str) -> "ExecutionResult":
        return cls(confirmed=True, signature=signature)

    @classmethod
    def failed(
        cls, error: str, retryable: bool, signature: str | None = None
    ) -> "ExecutionResult":
        return cls(confirmed=False, error=error, retryable=retryable, signature=signature)
