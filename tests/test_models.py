"""Tests for operations, plans and results."""

import pytest

from megatask.core.exceptions import ValidationError
from megatask.core.models import (
    AggregateResult, CallOutcome, Cometh, ComethDirection, ExecutionMode,
    ExecutionPlan, ObjectKind, OperationError, OutcomeKind, Polyanet, Position,
    Soloon, SoloonColor, describe
)


class TestOperations:

    def test_kinds_and_endpoints(self):
        assert Polyanet(Position(0, 0)).kind.endpoint == "/polyanets"
        assert Soloon(Position(0, 0), SoloonColor.BLUE).kind.endpoint == "/soloons"
        assert Cometh(Position(0, 0), ComethDirection.UP).kind.endpoint == "/comeths"

    @pytest.mark.parametrize("row,column", [(-1, 0), (0, -1), (-3, -3)])
    def test_negative_coordinates_are_invalid(self, row, column):
        with pytest.raises(ValidationError):
            Polyanet(Position(row, column)).validate()

    def test_valid_operations(self):
        Polyanet(Position(0, 0)).validate()
        Soloon(Position(10, 10), SoloonColor.WHITE).validate()
        Cometh(Position(4, 7), ComethDirection.LEFT).validate()

    def test_unknown_color(self):
        with pytest.raises(ValidationError) as exc_info:
            Soloon(Position(1, 1), "green").validate()
        assert "color" in str(exc_info.value)

    def test_unknown_direction(self):
        with pytest.raises(ValidationError):
            Cometh(Position(1, 1), "north").validate()

    def test_attribute_values_are_lowercase(self):
        assert [c.value for c in SoloonColor] == ["blue", "red", "purple", "white"]
        assert [d.value for d in ComethDirection] == ["up", "down", "left", "right"]

    def test_describe(self):
        assert describe(Soloon(Position(2, 3), SoloonColor.RED)) == "SOLOON at (2, 3)"

    def test_operations_are_values(self):
        assert Polyanet(Position(1, 2)) == Polyanet(Position(1, 2))
        assert len({Polyanet(Position(1, 2)), Polyanet(Position(1, 2))}) == 1


class TestExecutionPlan:

    def test_defaults(self):
        plan = ExecutionPlan([Polyanet(Position(0, 0))])
        assert plan.mode is ExecutionMode.SEQUENTIAL
        assert plan.batch_size == 5
        assert isinstance(plan.operations, tuple)

    @pytest.mark.parametrize("size", [0, -2, None])
    def test_non_positive_batch_size_falls_back(self, size):
        assert ExecutionPlan([], batch_size=size).batch_size == 5

    def test_batches_cover_plan_in_order(self):
        ops = [Polyanet(Position(i, 0)) for i in range(7)]
        batches = list(ExecutionPlan(ops, batch_size=3).batches())
        assert [start for start, _ in batches] == [0, 3, 6]
        assert [len(batch) for _, batch in batches] == [3, 3, 1]
        assert [op for _, batch in batches for op in batch] == ops

    def test_mode_values(self):
        assert ExecutionMode("bounded_parallel") is ExecutionMode.BOUNDED_PARALLEL


class TestResults:

    def test_outcomes(self):
        assert CallOutcome.success("v").ok
        cause = RuntimeError("x")
        assert CallOutcome.retryable(cause).kind is OutcomeKind.RETRYABLE
        assert CallOutcome.permanent(cause).cause is cause

    def test_aggregate_counts(self):
        error = OperationError(1, Polyanet(Position(0, 1)), RuntimeError("nope"))
        result = AggregateResult(attempted=3, failed=1, errors=(error,))
        assert result.succeeded == 2
        assert not result.ok
        assert str(error) == "#1 POLYANET at (0, 1): nope"

    def test_cancelled_result_is_not_ok(self):
        assert not AggregateResult(attempted=0, failed=0, cancelled=True).ok
        assert AggregateResult(attempted=0, failed=0).ok

    def test_object_kind_values(self):
        assert [k.value for k in ObjectKind] == ["POLYANET", "SOLOON", "COMETH"]
