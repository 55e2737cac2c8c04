"""Token metadata checks: mutability, socials and authority blacklist."""

from ..cache.lists import AddressListCache
from ..core.types import FilterResult, FilterVerdict, PoolRecord, TokenFacts


class MutableFilter:
    """Pass only when the token metadata can no longer be changed."""

    name = "mutable"

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if facts.metadata_mutable is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="Metadata unknown",
            )
        if facts.metadata_mutable:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.FAIL,
                reason="Metadata is mutable",
            )
        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)


class SocialsFilter:
    """Pass when the token advertises at least one social link."""

    name = "socials"

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if facts.social_links is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="Socials unknown",
            )
        if not any(link.strip() for link in facts.social_links):
            return FilterResult(
                filter_name=self.name, verdict=FilterVerdict.FAIL, reason="No socials"
            )
        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)


class BlacklistFilter:
    """Reject tokens whose update authority is on the blacklist."""

    name = "blacklist"

    def __init__(self, blacklist: AddressListCache) -> None:
        self.blacklist = blacklist

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if facts.update_authority is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="Update authority unknown",
            )
        if self.blacklist.contains(facts.update_authority):
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.FAIL,
                reason=f"Update authority {facts.update_authority} is blacklisted",
            )
        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)
