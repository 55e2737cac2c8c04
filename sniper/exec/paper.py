"""Paper trading: simulated builder, executor and wallet."""

import base64
import hashlib
import random
import time
from typing import Any

import structlog

from ..core.interfaces import Clock
from ..core.types import (
    ExecutionBudget,
    ExecutionResult,
    Side,
    TradeOrder,
    TransactionPayload,
)

logger = structlog.get_logger(__name__)


class VirtualHolding:
    """Virtual token holding for paper trading."""

    def __init__(self, mint: str, avg_cost: float, qty: float) -> None:
        """Initialize virtual holding.

        Args:
            mint: Token mint address
            avg_cost: Average cost per token in quote units
            qty: Quantity of tokens held
        """
        self.mint = mint
        self.avg_cost = avg_cost
        self.qty = qty
        self.created_at = time.time()

    def add(self, cost: float, qty: float) -> None:
        if qty <= 0:
            return

        total_cost = self.avg_cost * self.qty + cost
        self.qty += qty
        self.avg_cost = total_cost / self.qty

    def reduce(self, qty: float) -> float:
        """Reduce holding and return the cost basis of the sold quantity."""
        if qty <= 0:
            return 0.0

        qty = min(qty, self.qty)
        self.qty -= qty
        return self.avg_cost * qty


class PaperWallet:
    """In-memory wallet; satisfies the WalletProbe contract."""

    def __init__(self, quote_balance: float = 10.0) -> None:
        self.quote_balance = quote_balance
        self._holdings: dict[str, VirtualHolding] = {}
        self.realized_pnl = 0.0

    async def get_quote_balance(self) -> float:
        return self.quote_balance

    async def get_token_balance(self, mint: str) -> float:
        holding = self._holdings.get(mint)
        return holding.qty if holding else 0.0

    async def is_healthy(self) -> bool:
        return True

    def holding(self, mint: str) -> VirtualHolding | None:
        return self._holdings.get(mint)

    def apply_fill(self, fill: dict[str, Any]) -> None:
        """Move balances for a confirmed simulated swap."""
        mint = fill["token"]
        if fill["side"] == Side.BUY.value:
            self.quote_balance -= fill["amount_in"]
            holding = self._holdings.get(mint)
            if holding is None:
                self._holdings[mint] = VirtualHolding(
                    mint, fill["amount_in"] / fill["amount_out"], fill["amount_out"]
                )
            else:
                holding.add(fill["amount_in"], fill["amount_out"])
        else:
            holding = self._holdings.get(mint)
            cost_basis = holding.reduce(fill["amount_in"]) if holding else 0.0
            self.quote_balance += fill["amount_out"]
            self.realized_pnl += fill["amount_out"] - cost_basis
            if holding is not None and holding.qty <= 0:
                del self._holdings[mint]
                logger.info("Paper holding fully closed", token=mint)

        logger.info(
            "Paper fill applied",
            token=mint,
            side=fill["side"],
            amount_in=fill["amount_in"],
            amount_out=fill["amount_out"],
            quote_balance=self.quote_balance,
        )


class PaperTransactionBuilder:
    """Produces opaque payloads and remembers the fill each one implies.

    The expected output is recovered from the order's slippage-bounded
    minimum, then worsened by ``slippage_bps`` and ``fee_bps``.
    """

    def __init__(self, slippage_bps: int = 100, fee_bps: int = 50) -> None:
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps
        self.pending: dict[str, dict[str, Any]] = {}
        self._nonce = 0

    async def build(self, order: TradeOrder) -> TransactionPayload:
        self._nonce += 1
        raw = f"{order.token}:{order.side.value}:{order.amount_in}:{self._nonce}".encode()
        signature = hashlib.sha256(raw).hexdigest()

        expected = order.min_amount_out
        if order.slippage_pct < 100:
            expected = order.min_amount_out / (1 - order.slippage_pct / 100)
        amount_out = expected * (1 - (self.slippage_bps + self.fee_bps) / 10000.0)

        self.pending[signature] = {
            "token": order.token,
            "side": order.side.value,
            "amount_in": order.amount_in,
            "amount_out": amount_out,
            "fees": {
                "compute_unit_limit": order.compute_unit_limit,
                "compute_unit_price": order.compute_unit_price,
                "relay_tip": order.relay_tip,
            },
        }
        return TransactionPayload(
            tx_base64=base64.b64encode(raw).decode(),
            signature=signature,
            last_valid_block_height=self._nonce,
        )


class PaperExecutor:
    """Simulated landing with latency and a seeded failure rate."""

    def __init__(
        self,
        builder: PaperTransactionBuilder,
        wallet: PaperWallet,
        clock: Clock,
        latency: float = 0.0,
        failure_rate: float = 0.0,
        seed: int | None = None,
    ) -> None:
        """Initialize paper executor.

        Args:
            builder: Builder whose pending fills are settled on confirmation
            wallet: Paper wallet receiving the fills
            clock: Clock used to simulate confirmation latency
            latency: Seconds each attempt takes
            failure_rate: Probability (0-1) that an attempt fails retryably
            seed: Seed for the failure draw
        """
        self.builder = builder
        self.wallet = wallet
        self.clock = clock
        self.latency = latency
        self.failure_rate = failure_rate
        self._rng = random.Random(seed)
        self.attempts: list[ExecutionResult] = []

    def order_fees(self) -> dict[str, Any]:
        return {}

    async def execute(
        self, payload: TransactionPayload, budget: ExecutionBudget
    ) -> ExecutionResult:
        if self.latency:
            await self.clock.sleep(min(self.latency, budget.timeout))

        # A signed transaction is attempted once; retries are built afresh.
        fill = self.builder.pending.pop(payload.signature, None)
        if self.latency >= budget.timeout:
            result = ExecutionResult.failed("timeout", retryable=True, signature=payload.signature)
        elif self._rng.random() < self.failure_rate:
            result = ExecutionResult.failed(
                "simulated failure", retryable=True, signature=payload.signature
            )
        elif fill is None:
            result = ExecutionResult.failed(
                "unknown transaction", retryable=False, signature=payload.signature
            )
        else:
            self.wallet.apply_fill(fill)
            result = ExecutionResult.ok(payload.signature)

        self.attempts.append(result)
        logger.info(
            "Paper execution",
            signature=payload.signature,
            confirmed=result.confirmed,
            error=result.error,
        )
        return result
