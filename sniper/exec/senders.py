"""JSON-RPC transport for Solana: submission, confirmation and reads."""

import asyncio
import time
from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

RETRYABLE_RPC_CODES = {
    -32603,  # Internal error
    -32005,  # Node is unhealthy
    -32004,  # Slot was skipped
    429,  # Too many requests
}

COMMITMENT_LEVELS = ["processed", "confirmed", "finalized"]

# Local code for transactions that landed but failed on chain.
TX_FAILED = -1


def _is_retryable_error(exception) -> bool:
    """Check if an exception is retryable."""
    if isinstance(exception, httpx.TimeoutException):
        return True
    if isinstance(exception, httpx.NetworkError):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in (429, 502, 503, 504)
    if isinstance(exception, SolanaRpcError):
        return exception.code in RETRYABLE_RPC_CODES
    if isinstance(exception, TimeoutError):
        return True
    return False


class SolanaRpcError(Exception):
    """Exception for Solana RPC errors."""

    def __init__(self, code: int, message: str, data: dict | None = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC Error {code}: {message}")


class RpcSender:
    """JSON-RPC client used for sending, confirming and reading accounts."""

    def __init__(
        self,
        rpc_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        commitment: str = "confirmed",
    ) -> None:
        """Initialize RpcSender.

        Args:
            rpc_url: Solana RPC endpoint URL
            client: Optional httpx client (will create one if not provided)
            timeout: Request timeout in seconds
            commitment: Default commitment for reads and confirmation
        """
        self.rpc_url = rpc_url
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.commitment = commitment
        self._request_id = 0
        logger.info("RpcSender initialized", rpc_url=rpc_url, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    def _get_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception(_is_retryable_error),
        reraise=True,
    )
    async def call(self, method: str, params: list[Any] | dict[str, Any]) -> Any:
        """Make a JSON-RPC request with retries.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            The ``result`` member of the response

        Raises:
            SolanaRpcError: For RPC-specific errors
            httpx.HTTPError: For HTTP errors
        """
        request_id = self._get_request_id()
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }

        start_time = time.time()
        try:
            response = await self.client.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning(
                "RPC request failed",
                method=method,
                request_id=request_id,
                duration=time.time() - start_time,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.debug(
            "RPC request completed",
            method=method,
            request_id=request_id,
            duration=time.time() - start_time,
        )

        if "error" in data:
            error = data["error"]
            raise SolanaRpcError(
                code=error.get("code", -1),
                message=error.get("message", "Unknown RPC error"),
                data=error.get("data"),
            )

        return data.get("result")

    async def send(self, tx_base64: str, skip_preflight: bool = True, max_retries: int = 0) -> str:
        """Send a transaction and return its signature.

        Args:
            tx_base64: Base64-encoded signed transaction
            skip_preflight: Whether to skip preflight checks
            max_retries: Node-side rebroadcast count
        """
        params = [
            tx_base64,
            {
                "encoding": "base64",
                "skipPreflight": skip_preflight,
                "maxRetries": max_retries,
                "preflightCommitment": self.commitment,
            },
        ]
        signature = await self.call("sendTransaction", params)
        logger.info("Transaction sent", signature=signature)
        return signature

    async def confirm_signature(
        self,
        signature: str,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
    ) -> dict[str, Any]:
        """Poll until a signature reaches the configured commitment.

        Raises:
            TimeoutError: If confirmation times out
            SolanaRpcError: If the transaction landed with an error
        """
        end_time = time.monotonic() + timeout
        levels = COMMITMENT_LEVELS
        start = levels.index(self.commitment) if self.commitment in levels else 1
        accepted = set(levels[start:])

        while time.monotonic() < end_time:
            try:
                result = await self.call(
                    "getSignatureStatuses", [[signature], {"searchTransactionHistory": False}]
                )
            except SolanaRpcError:
                raise
            except httpx.HTTPError as e:
                logger.warning("Error checking signature status", signature=signature, error=str(e))
                await asyncio.sleep(poll_interval)
                continue

            status = (result or {}).get("value", [None])[0]
            if status is not None:
                if status.get("err") is not None:
                    raise SolanaRpcError(TX_FAILED, f"Transaction failed: {status['err']}")
                if status.get("confirmationStatus") in accepted:
                    logger.info(
                        "Transaction confirmed",
                        signature=signature,
                        slot=status.get("slot"),
                    )
                    return status

            await asyncio.sleep(poll_interval)

        raise TimeoutError(f"Transaction confirmation timeout after {timeout}s: {signature}")

    async def get_health(self) -> bool:
        try:
            return await self.call("getHealth", []) == "ok"
        except (SolanaRpcError, httpx.HTTPError) as e:
            logger.warning("RPC health check failed", error=str(e))
            return False

    async def get_balance(self, address: str) -> int:
        """Native balance in lamports."""
        result = await self.call("getBalance", [address, {"commitment": self.commitment}])
        return int(result["value"])

    async def get_parsed_account(self, address: str) -> dict[str, Any] | None:
        result = await self.call(
            "getAccountInfo",
            [address, {"encoding": "jsonParsed", "commitment": self.commitment}],
        )
        return result["value"] if result else None

    async def get_token_supply(self, mint: str) -> dict[str, Any]:
        result = await self.call("getTokenSupply", [mint, {"commitment": self.commitment}])
        return result["value"]

    async def get_token_account_balance(self, account: str) -> dict[str, Any]:
        result = await self.call(
            "getTokenAccountBalance", [account, {"commitment": self.commitment}]
        )
        return result["value"]

    async def get_token_largest_accounts(self, mint: str) -> list[dict[str, Any]]:
        result = await self.call(
            "getTokenLargestAccounts", [mint, {"commitment": self.commitment}]
        )
        return result["value"]

    async def get_token_accounts_by_owner(self, owner: str, mint: str) -> list[dict[str, Any]]:
        result = await self.call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": self.commitment}],
        )
        return result["value"]

    async def get_asset(self, asset_id: str) -> dict[str, Any] | None:
        """Digital-asset (DAS) view of a mint: metadata mutability, authorities, links."""
        return await self.call("getAsset", {"id": asset_id})

    async def get_token_accounts(self, mint: str, limit: int = 1000) -> dict[str, Any]:
        """DAS listing of holder accounts for a mint (first page)."""
        return await self.call("getTokenAccounts", {"mint": mint, "limit": limit})
