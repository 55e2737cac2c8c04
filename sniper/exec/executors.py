"""Transaction landing strategies: direct RPC, priority-fee relay, bundle relay."""

import asyncio
from enum import Enum
from typing import Any

import httpx
import structlog

from ..core.errors import ExecutionRejected, TransientError
from ..core.types import ExecutionBudget, ExecutionResult, TransactionPayload
from .senders import TX_FAILED, RpcSender, SolanaRpcError, _is_retryable_error

logger = structlog.get_logger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


class ExecutorKind(str, Enum):
    """Closed set of landing strategies, chosen once at startup."""

    DEFAULT = "default"
    WARP = "warp"
    JITO = "jito"


class BaseExecutor:
    """Shared attempt wrapper: hard timeout and error classification.

    Subclasses implement ``_land``; ``execute`` never raises for landing
    failures and always returns within ``budget.timeout``.
    """

    kind: ExecutorKind

    def __init__(self, sender: RpcSender) -> None:
        self.sender = sender

    def order_fees(self) -> dict[str, Any]:
        """Fee fields the transaction builder must embed for this strategy."""
        return {}

    async def execute(
        self, payload: TransactionPayload, budget: ExecutionBudget
    ) -> ExecutionResult:
        try:
            return await asyncio.wait_for(self._land(payload, budget), budget.timeout)
        except (asyncio.TimeoutError, TimeoutError):
            logger.warning(
                "Execution timed out",
                executor=self.kind.value,
                signature=payload.signature,
                timeout=budget.timeout,
            )
            return ExecutionResult.failed(
                "timeout", retryable=True, signature=payload.signature
            )
        except TransientError as e:
            return ExecutionResult.failed(str(e), retryable=True, signature=payload.signature)
        except ExecutionRejected as e:
            return ExecutionResult.failed(str(e), retryable=False, signature=payload.signature)
        except SolanaRpcError as e:
            # Landed-with-error (e.g. slippage exceeded) can succeed on a fresh attempt.
            retryable = e.code == TX_FAILED or _is_retryable_error(e)
            return ExecutionResult.failed(str(e), retryable=retryable, signature=payload.signature)
        except httpx.HTTPError as e:
            return ExecutionResult.failed(
                str(e), retryable=_is_retryable_error(e), signature=payload.signature
            )

    async def _land(
        self, payload: TransactionPayload, budget: ExecutionBudget
    ) -> ExecutionResult:
        raise NotImplementedError

    async def _confirm(
        self, signature: str, budget: ExecutionBudget
    ) -> ExecutionResult:
        await self.sender.confirm_signature(
            signature, timeout=budget.timeout, poll_interval=budget.poll_interval
        )
        return ExecutionResult.ok(signature)


class DefaultTransactionExecutor(BaseExecutor):
    """Direct submission to the RPC node; pays compute-unit priority fees."""

    kind = ExecutorKind.DEFAULT

    def __init__(
        self,
        sender: RpcSender,
        compute_unit_limit: int,
        compute_unit_price: int,
    ) -> None:
        super().__init__(sender)
        self.compute_unit_limit = compute_unit_limit
        self.compute_unit_price = compute_unit_price

    def order_fees(self) -> dict[str, Any]:
        return {
            "compute_unit_limit": self.compute_unit_limit,
            "compute_unit_price": self.compute_unit_price,
        }

    async def _land(
        self, payload: TransactionPayload, budget: ExecutionBudget
    ) -> ExecutionResult:
        logger.debug("Executing transaction", signature=payload.signature)
        signature = await self.sender.send(payload.tx_base64, skip_preflight=True)
        return await self._confirm(signature, budget)


class RelayExecutor(BaseExecutor):
    """Base for relays paid by a flat tip instead of compute-unit pricing."""

    def __init__(
        self,
        sender: RpcSender,
        relay_url: str,
        fee: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(sender)
        self.relay_url = relay_url
        self.fee = fee
        self.client = client or httpx.AsyncClient(timeout=30.0)

    @property
    def fee_lamports(self) -> int:
        return int(round(self.fee * LAMPORTS_PER_SOL))

    def order_fees(self) -> dict[str, Any]:
        return {"relay_tip": self.fee}

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(self.relay_url, json=body)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise TransientError(f"{self.kind.value} relay unreachable: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientError(
                f"{self.kind.value} relay returned {response.status_code}"
            )
        if response.status_code >= 400:
            raise ExecutionRejected(
                f"{self.kind.value} relay rejected transaction: "
                f"{response.status_code} {response.text[:200]}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise TransientError(f"{self.kind.value} relay returned non-JSON body") from e
        if not isinstance(data, dict):
            raise TransientError(f"{self.kind.value} relay returned unexpected body")
        return data


class WarpTransactionExecutor(RelayExecutor):
    """Priority-fee relay that submits and confirms on our behalf."""

    kind = ExecutorKind.WARP

    async def _land(
        self, payload: TransactionPayload, budget: ExecutionBudget
    ) -> ExecutionResult:
        logger.debug("Executing transaction via warp", signature=payload.signature)
        data = await self._post(
            {
                "transactions": [payload.tx_base64],
                "feeLamports": self.fee_lamports,
                "lastValidBlockHeight": payload.last_valid_block_height,
            }
        )
        signature = data.get("signature") or payload.signature
        if data.get("confirmed"):
            logger.info("Warp transaction confirmed", signature=signature)
            return ExecutionResult.ok(signature)

        error = data.get("error") or "not confirmed"
        raise TransientError(f"warp: {error}")


class JitoTransactionExecutor(RelayExecutor):
    """Bundle relay: lands the transaction within a slot for a tip."""

    kind = ExecutorKind.JITO

    async def _land(
        self, payload: TransactionPayload, budget: ExecutionBudget
    ) -> ExecutionResult:
        logger.debug("Executing transaction via jito", signature=payload.signature)
        data = await self._post(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "sendBundle",
                "params": [[payload.tx_base64], {"encoding": "base64"}],
            }
        )
        if "error" in data:
            error = data["error"]
            if isinstance(error, dict):
                error = error.get("message", error)
            raise TransientError(f"jito: {error}")

        logger.info("Bundle submitted", bundle_id=data.get("result"), signature=payload.signature)
        return await self._confirm(payload.signature, budget)


def create_executor(
    kind: str | ExecutorKind,
    sender: RpcSender,
    compute_unit_limit: int = 101337,
    compute_unit_price: int = 421197,
    fee: float = 0.0,
    warp_url: str = "",
    jito_url: str = "",
    client: httpx.AsyncClient | None = None,
) -> BaseExecutor:
    """Build the executor for a configured strategy tag.

    Raises:
        ValueError: For an unknown tag
    """
    kind = ExecutorKind(kind)
    if kind is ExecutorKind.WARP:
        executor = WarpTransactionExecutor(sender, warp_url, fee, client)
    elif kind is ExecutorKind.JITO:
        executor = JitoTransactionExecutor(sender, jito_url, fee, client)
    else:
        executor = DefaultTransactionExecutor(sender, compute_unit_limit, compute_unit_price)

    logger.info("Transaction executor selected", executor=kind.value, **executor.order_fees())
    return executor
