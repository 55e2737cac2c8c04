"""RPC-backed collaborators: token facts, pool prices and the wallet view."""

import asyncio
from typing import Any

import httpx
import structlog

from ..core.interfaces import Clock
from ..core.types import HolderShare, PoolRecord, PriceSample, TokenFacts
from ..exec.senders import RpcSender, SolanaRpcError
from .dexscreener import DexScreenerLookup

logger = structlog.get_logger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000

# Errors that leave a fact unknown instead of failing the whole fetch.
_FETCH_ERRORS = (SolanaRpcError, httpx.HTTPError, KeyError, TypeError, ValueError)


def _ui_amount(value: dict[str, Any]) -> float:
    """UI amount from a ``tokenAmount``-shaped dict."""
    if value.get("uiAmount") is not None:
        return float(value["uiAmount"])
    return int(value["amount"]) / 10 ** int(value.get("decimals", 0))


class RpcTokenDataSource:
    """Gathers the facts the filter pipeline evaluates.

    Each fact is fetched independently; a failed read leaves that fact
    ``None`` so the matching predicate reports indeterminate.
    """

    def __init__(
        self,
        sender: RpcSender,
        dexscreener: DexScreenerLookup | None = None,
        top_holders_count: int = 10,
        fetch_holders: bool = True,
    ) -> None:
        self.sender = sender
        self.dexscreener = dexscreener
        self.top_holders_count = top_holders_count
        self.fetch_holders = fetch_holders

    async def fetch(self, token: str, pool: PoolRecord) -> TokenFacts:
        mint_info, lp_burned, quote_reserve, asset, holders = await asyncio.gather(
            self._mint_info(token),
            self._lp_burned(pool),
            self._quote_reserve(pool),
            self._asset(token),
            self._holders(token, pool) if self.fetch_holders else _none(),
        )

        facts: dict[str, Any] = {"mint": token}
        if mint_info is not None:
            facts["mint_authority_renounced"] = mint_info.get("mintAuthority") is None
            facts["freeze_authority_absent"] = mint_info.get("freezeAuthority") is None
        facts["lp_burned"] = lp_burned
        facts["pool_quote_reserve"] = quote_reserve

        links: list[str] | None = None
        if asset is not None:
            facts["metadata_mutable"] = asset.get("mutable")
            facts["update_authority"] = _update_authority(asset)
            links = _asset_links(asset)
        if not links and self.dexscreener is not None:
            links = await self.dexscreener.social_links(token) or links
        facts["social_links"] = links

        if holders is not None:
            facts["holder_count"], facts["top_holders"] = holders

        return TokenFacts(**facts)

    async def _mint_info(self, mint: str) -> dict[str, Any] | None:
        try:
            account = await self.sender.get_parsed_account(mint)
            return account["data"]["parsed"]["info"] if account else None
        except _FETCH_ERRORS as e:
            logger.debug("Mint account unavailable", mint=mint, error=str(e))
            return None

    async def _lp_burned(self, pool: PoolRecord) -> bool | None:
        if not pool.lp_mint:
            return None
        try:
            supply = await self.sender.get_token_supply(pool.lp_mint)
            return int(supply["amount"]) == 0
        except _FETCH_ERRORS as e:
            logger.debug("LP supply unavailable", lp_mint=pool.lp_mint, error=str(e))
            return None

    async def _quote_reserve(self, pool: PoolRecord) -> float | None:
        if not pool.quote_vault:
            return None
        try:
            return _ui_amount(await self.sender.get_token_account_balance(pool.quote_vault))
        except _FETCH_ERRORS as e:
            logger.debug("Quote vault unavailable", vault=pool.quote_vault, error=str(e))
            return None

    async def _asset(self, mint: str) -> dict[str, Any] | None:
        try:
            return await self.sender.get_asset(mint)
        except _FETCH_ERRORS as e:
            logger.debug("Asset metadata unavailable", mint=mint, error=str(e))
            return None

    async def _holders(
        self, mint: str, pool: PoolRecord
    ) -> tuple[int, list[HolderShare]] | None:
        try:
            supply_value, listing = await asyncio.gather(
                self.sender.get_token_supply(mint),
                self.sender.get_token_accounts(mint),
            )
            decimals = int(supply_value.get("decimals", pool.base_decimals))
            supply = int(supply_value["amount"])
            accounts = listing.get("token_accounts") or []
        except _FETCH_ERRORS as e:
            logger.debug("Holder listing unavailable", mint=mint, error=str(e))
            return None

        shares = []
        for entry in accounts:
            raw = int(entry.get("amount", 0))
            if raw <= 0:
                continue
            shares.append(
                HolderShare(
                    account=entry["address"],
                    owner=entry.get("owner"),
                    amount=raw / 10**decimals,
                    pct=raw / supply * 100 if supply else 0.0,
                )
            )
        shares.sort(key=lambda s: s.amount, reverse=True)
        # The pool vault is excluded by the predicates, so keep one extra slot.
        return len(shares), shares[: self.top_holders_count + 1]


async def _none() -> None:
    return None


def _update_authority(asset: dict[str, Any]) -> str | None:
    for authority in asset.get("authorities") or []:
        if "full" in (authority.get("scopes") or []) or "metadata" in (
            authority.get("scopes") or []
        ):
            return authority.get("address")
    return None


def _asset_links(asset: dict[str, Any]) -> list[str]:
    content = asset.get("content") or {}
    links = [v for v in (content.get("links") or {}).values() if isinstance(v, str) and v]
    metadata = content.get("metadata") or {}
    for key in ("twitter", "telegram", "website"):
        if metadata.get(key):
            links.append(metadata[key])
    return links


class PoolReservePriceSource:
    """Spot price from the pool's vault balances (quote per token)."""

    def __init__(self, sender: RpcSender, clock: Clock) -> None:
        self.sender = sender
        self.clock = clock

    async def get_price(self, pool: PoolRecord) -> PriceSample | None:
        if not pool.base_vault or not pool.quote_vault:
            return None
        try:
            base, quote = await asyncio.gather(
                self.sender.get_token_account_balance(pool.base_vault),
                self.sender.get_token_account_balance(pool.quote_vault),
            )
            base_amount, quote_amount = _ui_amount(base), _ui_amount(quote)
        except _FETCH_ERRORS as e:
            logger.warning("Price read failed", pool=pool.pool_id, error=str(e))
            return None

        if base_amount <= 0:
            return None
        return PriceSample(
            price=quote_amount / base_amount,
            ts=self.clock.now(),
            quote_reserve=quote_amount,
        )


class RpcWallet:
    """Read-only wallet view; satisfies the WalletProbe contract."""

    def __init__(self, sender: RpcSender, owner: str, quote_mint: str, native_quote: bool) -> None:
        """Initialize wallet view.

        Args:
            sender: RPC transport
            owner: Wallet public key
            quote_mint: Quote asset mint
            native_quote: Count the native balance toward the quote balance
        """
        self.sender = sender
        self.owner = owner
        self.quote_mint = quote_mint
        self.native_quote = native_quote

    async def get_quote_balance(self) -> float:
        balance = await self.get_token_balance(self.quote_mint)
        if self.native_quote:
            balance += await self.sender.get_balance(self.owner) / LAMPORTS_PER_SOL
        return balance

    async def get_token_balance(self, mint: str) -> float:
        accounts = await self.sender.get_token_accounts_by_owner(self.owner, mint)
        total = 0.0
        for account in accounts:
            info = account["account"]["data"]["parsed"]["info"]
            total += _ui_amount(info["tokenAmount"])
        return total

    async def is_healthy(self) -> bool:
        return await self.sender.get_health()
