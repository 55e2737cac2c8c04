"""Tests for the external-command transaction builder."""

import shlex
import sys

import pytest

from sniper.core.types import PoolRecord, Side, TradeOrder
from sniper.exec.builders import BuilderError, CommandTransactionBuilder

ORDER = TradeOrder(
    token="mint",
    pool=PoolRecord(pool_id="pool", base_mint="mint", quote_mint="quote", open_timestamp=0),
    side=Side.BUY,
    amount_in=0.1,
    min_amount_out=10.0,
    slippage_pct=20.0,
)


def python_command(script: str) -> str:
    return shlex.join([sys.executable, "-c", script])


ECHO_SCRIPT = """
import json, sys
order = json.load(sys.stdin)
print(json.dumps({"tx_base64": "dHg=", "signature": order["token"] + "-sig"}))
"""


class TestCommandTransactionBuilder:
    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            CommandTransactionBuilder("   ")

    @pytest.mark.asyncio
    async def test_order_passed_on_stdin(self):
        builder = CommandTransactionBuilder(python_command(ECHO_SCRIPT))

        payload = await builder.build(ORDER)

        assert payload.tx_base64 == "dHg="
        assert payload.signature == "mint-sig"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        builder = CommandTransactionBuilder(
            python_command("import sys; sys.stderr.write('no key'); sys.exit(3)")
        )

        with pytest.raises(BuilderError, match="no key"):
            await builder.build(ORDER)

    @pytest.mark.asyncio
    async def test_invalid_output(self):
        builder = CommandTransactionBuilder(python_command("print('not json')"))

        with pytest.raises(BuilderError, match="invalid output"):
            await builder.build(ORDER)

    @pytest.mark.asyncio
    async def test_timeout(self):
        builder = CommandTransactionBuilder(
            python_command("import time; time.sleep(10)"), timeout=0.2
        )

        with pytest.raises(BuilderError, match="timed out"):
            await builder.build(ORDER)
