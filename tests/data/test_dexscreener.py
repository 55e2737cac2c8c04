"""Tests for the DexScreener social-link lookup."""

import asyncio

import httpx
import pytest
import respx

from sniper.data.dexscreener import (
    DexScreenerLookup,
    LinkCache,
    RequestPacer,
    extract_social_links,
)

BASE_URL = "https://api.dexscreener.test"

PAIRS = {
    "pairs": [
        {
            "info": {
                "websites": [{"label": "Website", "url": "https://token.example"}],
                "socials": [{"type": "twitter", "url": "https://x.com/token"}],
            }
        },
        {"info": {"websites": [{"url": "https://token.example"}]}},
        {"pairAddress": "no-info"},
    ]
}


class TestExtractSocialLinks:
    def test_collects_unique_links(self):
        assert extract_social_links(PAIRS) == ["https://token.example", "https://x.com/token"]

    def test_no_pairs(self):
        assert extract_social_links({"pairs": None}) == []


class TestLinkCache:
    def test_evicts_least_recent(self):
        cache = LinkCache(maxsize=2, ttl=60)
        cache.put("a", ["https://a"])
        cache.put("b", ["https://b"])
        cache.get("a")
        cache.put("c", ["https://c"])

        assert cache.get("b") is None
        assert cache.get("a") == ["https://a"]
        assert cache.get("c") == ["https://c"]

    def test_empty_links_not_stored(self):
        cache = LinkCache()
        cache.put("a", [])

        assert len(cache) == 0

    def test_expired_entry_dropped(self):
        cache = LinkCache(ttl=-1)
        cache.put("a", ["https://a"])

        assert cache.get("a") is None
        assert len(cache) == 0


class TestRequestPacer:
    def test_burst_is_bounded(self):
        pacer = RequestPacer(rate=0.001, burst=2)

        assert pacer.try_take()
        assert pacer.try_take()
        assert not pacer.try_take()

    @pytest.mark.asyncio
    async def test_wait_returns_when_slot_frees(self):
        pacer = RequestPacer(rate=1000.0, burst=1)
        assert pacer.try_take()

        await asyncio.wait_for(pacer.wait(), timeout=1.0)

        assert pacer.available < 1


class TestDexScreenerLookup:
    @pytest.fixture
    def lookup(self):
        return DexScreenerLookup(BASE_URL)

    @pytest.mark.asyncio
    @respx.mock
    async def test_links_are_cached(self, lookup):
        route = respx.get(f"{BASE_URL}/latest/dex/tokens/mint").mock(
            return_value=httpx.Response(200, json=PAIRS)
        )

        first = await lookup.social_links("mint")
        second = await lookup.social_links("mint")

        assert first == second == ["https://token.example", "https://x.com/token"]
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_answer_not_cached(self, lookup):
        """Fresh pools are indexed late, so an empty answer is asked again."""
        route = respx.get(f"{BASE_URL}/latest/dex/tokens/mint").mock(
            return_value=httpx.Response(200, json={"pairs": []})
        )

        assert await lookup.social_links("mint") == []
        assert await lookup.social_links("mint") == []
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_is_unknown(self, lookup):
        respx.get(f"{BASE_URL}/latest/dex/tokens/mint").mock(return_value=httpx.Response(500))

        assert await lookup.social_links("mint") is None
