"""Tests for the RPC-backed token facts, price and wallet views."""

from unittest.mock import AsyncMock

import pytest

from sniper.data.chain import PoolReservePriceSource, RpcTokenDataSource, RpcWallet
from sniper.exec.senders import SolanaRpcError


def token_balance(amount: float) -> dict:
    return {"amount": str(int(amount * 10**9)), "decimals": 9, "uiAmount": amount}


@pytest.fixture
def sender():
    sender = AsyncMock()
    sender.get_parsed_account.return_value = {
        "data": {"parsed": {"info": {"mintAuthority": None, "freezeAuthority": "freezer"}}}
    }
    sender.get_token_supply.side_effect = lambda mint: (
        {"amount": "0", "decimals": 9}
        if mint.startswith("lp-")
        else {"amount": "1000000000000", "decimals": 9}
    )
    sender.get_token_account_balance.return_value = token_balance(25.0)
    sender.get_asset.return_value = {
        "mutable": True,
        "authorities": [{"address": "updater", "scopes": ["full"]}],
        "content": {"links": {"external_url": "https://token.example"}, "metadata": {}},
    }
    sender.get_token_accounts.return_value = {
        "token_accounts": [
            {"address": "acc-small", "owner": "o1", "amount": 100_000_000_000},
            {"address": "acc-empty", "owner": "o2", "amount": 0},
            {"address": "acc-big", "owner": "o3", "amount": 600_000_000_000},
        ]
    }
    return sender


class TestRpcTokenDataSource:
    @pytest.mark.asyncio
    async def test_maps_facts(self, sender, make_pool):
        source = RpcTokenDataSource(sender, top_holders_count=10)
        pool = make_pool("mint")

        facts = await source.fetch("mint", pool)

        assert facts.mint_authority_renounced is True
        assert facts.freeze_authority_absent is False
        assert facts.lp_burned is True
        assert facts.pool_quote_reserve == 25.0
        assert facts.metadata_mutable is True
        assert facts.update_authority == "updater"
        assert facts.social_links == ["https://token.example"]
        assert facts.holder_count == 2
        assert [h.account for h in facts.top_holders] == ["acc-big", "acc-small"]
        assert facts.top_holders[0].pct == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_failed_read_leaves_fact_unknown(self, sender, make_pool):
        sender.get_parsed_account.side_effect = SolanaRpcError(-32603, "Internal error")
        sender.get_asset.side_effect = SolanaRpcError(-32601, "Method not found")

        facts = await RpcTokenDataSource(sender).fetch("mint", make_pool("mint"))

        assert facts.mint_authority_renounced is None
        assert facts.metadata_mutable is None
        assert facts.social_links is None
        assert facts.lp_burned is True

    @pytest.mark.asyncio
    async def test_falls_back_to_dexscreener_links(self, sender, make_pool):
        sender.get_asset.return_value = {"mutable": False, "content": {}}
        dexscreener = AsyncMock()
        dexscreener.social_links.return_value = ["https://x.com/token"]

        facts = await RpcTokenDataSource(sender, dexscreener=dexscreener).fetch(
            "mint", make_pool("mint")
        )

        assert facts.social_links == ["https://x.com/token"]
        dexscreener.social_links.assert_awaited_once_with("mint")

    @pytest.mark.asyncio
    async def test_holders_skipped_when_disabled(self, sender, make_pool):
        facts = await RpcTokenDataSource(sender, fetch_holders=False).fetch(
            "mint", make_pool("mint")
        )

        assert facts.holder_count is None
        sender.get_token_accounts.assert_not_awaited()


class TestPoolReservePriceSource:
    @pytest.mark.asyncio
    async def test_price_from_vaults(self, clock, make_pool):
        sender = AsyncMock()
        sender.get_token_account_balance.side_effect = lambda vault: (
            token_balance(1000.0) if vault.startswith("base-") else token_balance(10.0)
        )

        sample = await PoolReservePriceSource(sender, clock).get_price(make_pool("mint"))

        assert sample.price == pytest.approx(0.01)
        assert sample.quote_reserve == 10.0
        assert sample.ts == clock.now()

    @pytest.mark.asyncio
    async def test_read_failure_gives_no_sample(self, clock, make_pool):
        sender = AsyncMock()
        sender.get_token_account_balance.side_effect = SolanaRpcError(-32603, "Internal error")

        assert await PoolReservePriceSource(sender, clock).get_price(make_pool("mint")) is None


class TestRpcWallet:
    @pytest.mark.asyncio
    async def test_native_quote_included(self):
        sender = AsyncMock()
        sender.get_token_accounts_by_owner.return_value = [
            {"account": {"data": {"parsed": {"info": {"tokenAmount": token_balance(1.5)}}}}}
        ]
        sender.get_balance.return_value = 500_000_000

        wallet = RpcWallet(sender, "owner", "wsol", native_quote=True)

        assert await wallet.get_quote_balance() == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_token_balance_sums_accounts(self):
        sender = AsyncMock()
        sender.get_token_accounts_by_owner.return_value = [
            {"account": {"data": {"parsed": {"info": {"tokenAmount": token_balance(1.0)}}}}},
            {"account": {"data": {"parsed": {"info": {"tokenAmount": {"amount": "2000", "decimals": 3}}}}}},
        ]

        wallet = RpcWallet(sender, "owner", "usdc", native_quote=False)

        assert await wallet.get_token_balance("mint") == pytest.approx(3.0)
        sender.get_balance.assert_not_awaited()
