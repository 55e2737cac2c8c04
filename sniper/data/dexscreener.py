"""DexScreener lookups for token social links."""

import asyncio
import time
from collections import OrderedDict
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

# Token endpoints allow 300 requests per minute.
REQUESTS_PER_SECOND = 300 / 60
BURST = 60


class LinkCache:
    """Social links per mint, bounded and expiring.

    Only non-empty answers are stored: pairs are indexed some time after the
    pool is created, so an empty answer is asked again next time.
    """

    def __init__(self, maxsize: int = 1000, ttl: float = 300.0) -> None:
        self.maxsize = maxsize
        self.ttl = ttl
        self._entries: OrderedDict[str, tuple[list[str], float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, mint: str) -> list[str] | None:
        entry = self._entries.get(mint)
        if entry is None:
            return None
        links, stored_at = entry
        if time.monotonic() - stored_at > self.ttl:
            del self._entries[mint]
            return None
        self._entries.move_to_end(mint)
        return links

    def put(self, mint: str, links: list[str]) -> None:
        if not links:
            return
        self._entries[mint] = (links, time.monotonic())
        self._entries.move_to_end(mint)
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)


class RequestPacer:
    """Token bucket that waits for a free slot instead of refusing."""

    def __init__(self, rate: float = REQUESTS_PER_SECOND, burst: int = BURST) -> None:
        self.rate = rate
        self.burst = burst
        self.available = float(burst)
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.available = min(self.burst, self.available + (now - self._updated) * self.rate)
        self._updated = now

    def try_take(self) -> bool:
        self._refill()
        if self.available >= 1:
            self.available -= 1
            return True
        return False

    async def wait(self) -> None:
        async with self._lock:
            while not self.try_take():
                await asyncio.sleep((1 - self.available) / self.rate)


def extract_social_links(data: dict[str, Any]) -> list[str]:
    """Collect website and social URLs from a ``latest/dex/tokens`` response."""
    links: list[str] = []
    for pair in data.get("pairs") or []:
        info = pair.get("info") or {}
        for entry in (info.get("websites") or []) + (info.get("socials") or []):
            url = entry.get("url")
            if url and url not in links:
                links.append(url)
    return links


class DexScreenerLookup:
    """DexScreener API lookups, cached and paced."""

    def __init__(
        self,
        base_url: str,
        session: httpx.AsyncClient | None = None,
        cache_ttl: int = 300,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or httpx.AsyncClient(timeout=30.0)
        self.links = LinkCache(ttl=cache_ttl)
        self.pacer = RequestPacer()
        self.retry_config = AsyncRetrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
            reraise=True,
        )

    async def _fetch_pairs(self, mint: str) -> dict[str, Any]:
        await self.pacer.wait()
        url = f"{self.base_url}/latest/dex/tokens/{mint}"
        async for attempt in self.retry_config:
            with attempt:
                response = await self.session.get(url)
                response.raise_for_status()
                return response.json()

    async def social_links(self, mint: str) -> list[str] | None:
        """Links published for a token, or None when the lookup failed.

        An empty list means DexScreener answered but lists no links.
        """
        cached = self.links.get(mint)
        if cached is not None:
            return cached

        try:
            data = await self._fetch_pairs(mint)
        except httpx.HTTPStatusError as e:
            logger.warning(
                "DexScreener returned an error status",
                mint=mint,
                status_code=e.response.status_code,
            )
            return None
        except httpx.HTTPError as e:
            logger.warning("DexScreener lookup failed", mint=mint, error=str(e))
            return None

        links = extract_social_links(data)
        self.links.put(mint, links)
        logger.debug("Looked up social links", mint=mint, links=len(links))
        return links

    async def close(self) -> None:
        await self.session.aclose()
