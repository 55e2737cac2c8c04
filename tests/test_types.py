"""Tests for core data types."""

import pytest
from pydantic import ValidationError

from sniper.core.types import (
    TRANSITIONS,
    ExecutionResult,
    FilterResult,
    FilterRound,
    FilterVerdict,
    PoolRecord,
    Position,
    PositionState,
)


class TestPositionState:
    def test_terminal_states(self):
        assert PositionState.CLOSED.terminal
        assert PositionState.FAILED.terminal
        assert not PositionState.OPEN.terminal
        assert not PositionState.NONE.terminal

    def test_exiting_never_returns_to_open(self):
        assert PositionState.OPEN not in TRANSITIONS[PositionState.EXITING]

    def test_terminal_states_have_no_moves(self):
        assert TRANSITIONS[PositionState.CLOSED] == frozenset()
        assert TRANSITIONS[PositionState.FAILED] == frozenset()

    def test_open_only_after_entering(self):
        sources = [s for s, targets in TRANSITIONS.items() if PositionState.OPEN in targets]
        assert sources == [PositionState.ENTERING]


class TestRecords:
    def test_pool_record_is_immutable(self, make_pool):
        pool = make_pool()
        with pytest.raises(ValidationError):
            pool.base_mint = "other"

    def test_pool_record_requires_open_timestamp(self):
        with pytest.raises(ValidationError):
            PoolRecord(pool_id="p", base_mint="m", quote_mint="q")

    def test_position_defaults(self, make_pool):
        position = Position(token="m", pool=make_pool("m"))
        assert position.state is PositionState.NONE
        assert position.active
        assert position.quote_amount_spent == 0.0
        assert position.selling_suppressed is False


class TestFilterRound:
    def test_empty_round_passes(self):
        assert FilterRound().passed

    def test_indeterminate_counts_as_failure(self):
        round_ = FilterRound(
            results=[
                FilterResult(filter_name="a", verdict=FilterVerdict.PASS),
                FilterResult(filter_name="b", verdict=FilterVerdict.INDETERMINATE),
            ]
        )
        assert not round_.passed
        assert [r.filter_name for r in round_.failures] == ["b"]


class TestExecutionResult:
    def test_ok(self):
        result = ExecutionResult.ok("sig")
        assert result.confirmed
        assert result.signature == "sig"
        assert result.error is None

    def test_failed(self):
        result = ExecutionResult.failed("timeout", retryable=True)
        assert not result.confirmed
        assert result.retryable
        assert result.error == "timeout"
