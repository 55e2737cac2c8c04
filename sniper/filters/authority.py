"""Mint and freeze authority checks."""

from ..core.types import FilterResult, FilterVerdict, PoolRecord, TokenFacts


class RenouncedFilter:
    """Pass only when the mint authority has been renounced."""

    name = "renounced"

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if facts.mint_authority_renounced is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="Mint authority unknown",
            )
        if not facts.mint_authority_renounced:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.FAIL,
                reason="Mint authority not renounced",
            )
        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)


class FreezableFilter:
    """Pass only when the token has no freeze authority."""

    name = "freezable"

    def evaluate(self, facts: TokenFacts, pool: PoolRecord) -> FilterResult:
        if facts.freeze_authority_absent is None:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.INDETERMINATE,
                reason="Freeze authority unknown",
            )
        if not facts.freeze_authority_absent:
            return FilterResult(
                filter_name=self.name,
                verdict=FilterVerdict.FAIL,
                reason="Token can be frozen",
            )
        return FilterResult(filter_name=self.name, verdict=FilterVerdict.PASS)
