"""
Data model for megaverse execution plans.

Create operations form a closed set of three variants (Polyanet, Soloon,
Cometh). Plans and results are immutable value objects; the only shared
mutable state in the engine lives in the rate limiter.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple, Union

from .exceptions import ExecutionFailedError, ValidationError


DEFAULT_BATCH_SIZE = 5


class ObjectKind(Enum):
    """Object kinds that can be placed in the megaverse."""
    POLYANET = "POLYANET"
    SOLOON = "SOLOON"
    COMETH = "COMETH"

    @property
    def endpoint(self) -> str:
        return f"/{self.value.lower()}s"


class SoloonColor(Enum):
    BLUE = "blue"
    RED = "red"
    PURPLE = "purple"
    WHITE = "white"


class ComethDirection(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


class ExecutionMode(Enum):
    """How the orchestrator schedules the operations of a plan."""
    SEQUENTIAL = "sequential"
    BOUNDED_PARALLEL = "bounded_parallel"
    BATCHED = "batched"


@dataclass(frozen=True)
class Position:
    """A grid cell, addressed by zero-based row and column."""
    row: int
    column: int

    def validate(self) -> None:
        if self.row < 0 or self.column < 0:
            raise ValidationError(
                "invalid position: coordinates must be non-negative",
                row=self.row, column=self.column
            )

    def __str__(self):
        return f"({self.row}, {self.column})"


@dataclass(frozen=True)
class Polyanet:
    """Plain marker."""
    position: Position

    @property
    def kind(self) -> ObjectKind:
        return ObjectKind.POLYANET

    def validate(self) -> None:
        self.position.validate()


@dataclass(frozen=True)
class Soloon:
    """Colored marker."""
    position: Position
    color: SoloonColor

    @property
    def kind(self) -> ObjectKind:
        return ObjectKind.SOLOON

    def validate(self) -> None:
        self.position.validate()
        if not isinstance(self.color, SoloonColor):
            raise ValidationError(
                "invalid soloon color: must be blue, red, purple, or white",
                color=self.color
            )


@dataclass(frozen=True)
class Cometh:
    """Directional marker."""
    position: Position
    direction: ComethDirection

    @property
    def kind(self) -> ObjectKind:
        return ObjectKind.COMETH

    def validate(self) -> None:
        self.position.validate()
        if not isinstance(self.direction, ComethDirection):
            raise ValidationError(
                "invalid cometh direction: must be up, down, left, or right",
                direction=self.direction
            )


CreateOperation = Union[Polyanet, Soloon, Cometh]


def describe(operation: CreateOperation) -> str:
    """Human readable label used in log lines."""
    return f"{operation.kind.value} at {operation.position}"


@dataclass(frozen=True)
class ExecutionPlan:
    """
    An ordered batch of create operations plus the mode to run them in.

    ``batch_size`` only matters for BATCHED plans; non-positive values fall
    back to DEFAULT_BATCH_SIZE.
    """
    operations: Tuple[CreateOperation, ...]
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    batch_size: int = DEFAULT_BATCH_SIZE
    name: str = "plan"

    def __post_init__(self):
        # Accept any iterable but store an immutable tuple
        object.__setattr__(self, "operations", tuple(self.operations))
        if self.batch_size is None or self.batch_size <= 0:
            object.__setattr__(self, "batch_size", DEFAULT_BATCH_SIZE)

    def __len__(self) -> int:
        return len(self.operations)

    def batches(self):
        """Yield contiguous (start_index, operations) groups in plan order."""
        for start in range(0, len(self.operations), self.batch_size):
            yield start, self.operations[start:start + self.batch_size]


class OutcomeKind(Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class CallOutcome:
    """Classified result of one attempted remote call."""
    kind: OutcomeKind
    value: Any = None
    cause: Optional[BaseException] = None

    @classmethod
    def success(cls, value: Any = None) -> "CallOutcome":
        return cls(OutcomeKind.SUCCESS, value=value)

    @classmethod
    def retryable(cls, cause: BaseException) -> "CallOutcome":
        return cls(OutcomeKind.RETRYABLE, cause=cause)

    @classmethod
    def permanent(cls, cause: BaseException) -> "CallOutcome":
        return cls(OutcomeKind.PERMANENT, cause=cause)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


@dataclass(frozen=True)
class OperationError:
    """A failed operation, keyed by its index in the plan."""
    index: int
    operation: CreateOperation
    error: BaseException

    def __str__(self):
        return f"#{self.index} {describe(self.operation)}: {self.error}"


@dataclass(frozen=True)
class AggregateResult:
    """Summary of one plan run."""
    attempted: int
    failed: int
    errors: Tuple[OperationError, ...] = field(default_factory=tuple)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return self.attempted - self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.cancelled

    def raise_for_failures(self) -> None:
        """Raise ExecutionFailedError if one or more operations failed."""
        if self.failed:
            raise ExecutionFailedError(self.failed, self.attempted)


@dataclass(frozen=True)
class ValidationReport:
    """Comparison of the current megaverse with a plan's target cells."""
    expected: int
    matched: int
    missing: Tuple[CreateOperation, ...] = field(default_factory=tuple)
    mismatched: Tuple[Tuple[CreateOperation, CreateOperation], ...] = field(default_factory=tuple)
    unexpected: Tuple[CreateOperation, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not (self.missing or self.mismatched or self.unexpected)

    def describe_problems(self):
        """Yield one human readable line per differing cell."""
        for operation in self.missing:
            yield f"missing {describe(operation)}"
        for expected, found in self.mismatched:
            yield (f"{expected.position}: expected {_attributes(expected)}, "
                   f"found {_attributes(found)}")
        for operation in self.unexpected:
            yield f"unexpected {describe(operation)}"


def _attributes(operation: CreateOperation) -> str:
    if isinstance(operation, Soloon):
        return f"{operation.color.value} {operation.kind.value}"
    if isinstance(operation, Cometh):
        return f"{operation.direction.value} {operation.kind.value}"
    return operation.kind.value
