"""Transaction builder backed by an external command."""

import asyncio
import json
import shlex

import structlog

from ..core.errors import SniperError
from ..core.types import TradeOrder, TransactionPayload

logger = structlog.get_logger(__name__)


class BuilderError(SniperError):
    """The external builder failed or returned an unusable payload."""


class CommandTransactionBuilder:
    """Builds and signs swaps with an external command (e.g. a signing bridge).

    The order is written to the command's stdin as JSON; the command must
    print a JSON object with ``tx_base64``, ``signature`` and optionally
    ``last_valid_block_height``. Keys never enter this process.
    """

    def __init__(self, command: str, timeout: float = 30.0) -> None:
        """Initialize CommandTransactionBuilder.

        Args:
            command: Command line of the external builder
            timeout: Timeout in seconds for one build
        """
        self.argv = shlex.split(command)
        if not self.argv:
            raise ValueError("builder command is empty")
        self.timeout = timeout
        logger.info("CommandTransactionBuilder initialized", command=self.argv[0])

    async def build(self, order: TradeOrder) -> TransactionPayload:
        """Run the command for one order.

        Raises:
            BuilderError: If the command fails, times out or prints bad JSON
        """
        proc = await asyncio.create_subprocess_exec(
            *self.argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(order.model_dump_json().encode()), self.timeout
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise BuilderError(
                f"External builder timed out after {self.timeout} seconds"
            ) from e

        if proc.returncode != 0:
            raise BuilderError(
                f"External builder failed ({proc.returncode}): {stderr.decode().strip()}"
            )

        try:
            payload = TransactionPayload(**json.loads(stdout))
        except (ValueError, TypeError) as e:
            raise BuilderError(f"External builder returned invalid output: {e}") from e

        logger.debug(
            "Transaction built",
            token_mint=order.token,
            side=order.side.value,
            signature=payload.signature,
        )
        return payload
