"""
Pattern strategies that turn a target shape into an ExecutionPlan.

- CrossPattern: the fixed X-shaped cross of Polyanets (phase 1)
- LogoPattern: whatever the remote goal map describes (phase 2)

``compare_with_plan`` checks a decoded megaverse against a generated plan.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .core.cancellation import CancellationToken
from .core.exceptions import MegataskError, PlanError
from .core.models import (
    Cometh, ComethDirection, CreateOperation, ExecutionMode, ExecutionPlan,
    Polyanet, Position, Soloon, SoloonColor, ValidationReport
)

logger = logging.getLogger(__name__)


class PatternStrategy(ABC):
    """Base class for plan generators."""

    name: str = "pattern"

    @abstractmethod
    async def generate_plan(self, token: Optional[CancellationToken] = None) -> ExecutionPlan:
        """Build the plan, or raise PlanError explaining why it cannot be built."""
        pass

    @abstractmethod
    def grid_size(self) -> Tuple[int, int]:
        """(width, height) of the megaverse this pattern targets."""
        pass


class CrossPattern(PatternStrategy):
    """
    X-shaped cross of Polyanets on a square grid.

    Both diagonals are filled from ``start_row`` to ``end_row`` inclusive;
    the shared center cell is emitted once.
    """

    name = "Cross Pattern (Phase 1)"

    def __init__(self, grid_size: int = 11, start_row: int = 2, end_row: int = 8,
                 mode: ExecutionMode = ExecutionMode.BOUNDED_PARALLEL):
        self.size = grid_size
        self.start_row = start_row
        self.end_row = end_row
        self.mode = mode

    async def generate_plan(self, token: Optional[CancellationToken] = None) -> ExecutionPlan:
        return self.build_plan()

    def build_plan(self) -> ExecutionPlan:
        if self.start_row < 0 or self.end_row >= self.size or self.start_row > self.end_row:
            raise PlanError(
                f"invalid cross configuration: start={self.start_row} "
                f"end={self.end_row} size={self.size}"
            )

        operations: List[CreateOperation] = []
        for i in range(self.start_row, self.end_row + 1):
            operations.append(Polyanet(Position(i, i)))
            anti = self.size - 1 - i
            if anti != i:
                operations.append(Polyanet(Position(i, anti)))

        return ExecutionPlan(operations, mode=self.mode, name=self.name)

    def grid_size(self) -> Tuple[int, int]:
        return self.size, self.size


def parse_goal_cell(value: str, row: int, column: int) -> Optional[CreateOperation]:
    """
    Convert one goal map cell into a create operation.

    ``SPACE`` and empty cells yield None; unknown values are logged and
    skipped.
    """
    cell = (value or "").strip().upper()
    if cell in ("", "SPACE"):
        return None

    position = Position(row, column)
    if cell == "POLYANET":
        return Polyanet(position)

    prefix, _, suffix = cell.rpartition("_")
    try:
        if suffix == "SOLOON":
            return Soloon(position, SoloonColor(prefix.lower()))
        if suffix == "COMETH":
            return Cometh(position, ComethDirection(prefix.lower()))
    except ValueError:
        pass

    logger.warning("Unknown cell value '%s' at position (%d, %d)", value, row, column)
    return None


class LogoPattern(PatternStrategy):
    """
    Pattern described by the remote goal map.

    Args:
        api: Object exposing ``async get_goal_map(token)``
            (e.g. megatask.apis.MegaverseAPI)
        mode: Execution mode for the resulting plan
    """

    name = "Logo Pattern (Phase 2)"

    def __init__(self, api, mode: ExecutionMode = ExecutionMode.BOUNDED_PARALLEL,
                 batch_size: int = 5):
        self.api = api
        self.mode = mode
        self.batch_size = batch_size
        self.goal: Optional[List[List[str]]] = None

    async def generate_plan(self, token: Optional[CancellationToken] = None) -> ExecutionPlan:
        try:
            goal = await self.api.get_goal_map(token)
        except MegataskError as exc:
            raise PlanError("failed to fetch goal map", original_error=exc)

        if not goal:
            raise PlanError("goal map is empty")
        self.goal = goal

        operations = [
            operation
            for row, cells in enumerate(goal)
            for column, value in enumerate(cells)
            for operation in [parse_goal_cell(value, row, column)]
            if operation is not None
        ]
        logger.info("Goal map %dx%d yields %d objects",
                    len(goal[0]), len(goal), len(operations))
        return ExecutionPlan(operations, mode=self.mode, batch_size=self.batch_size,
                             name=self.name)

    def grid_size(self) -> Tuple[int, int]:
        if not self.goal:
            return 0, 0
        return len(self.goal[0]), len(self.goal)


def compare_with_plan(plan: ExecutionPlan,
                      grid: List[List[Optional[CreateOperation]]]) -> ValidationReport:
    """
    Compare a decoded megaverse grid with the cells ``plan`` creates.

    Cells the plan leaves empty must be empty in the grid; objects found
    there are reported as unexpected.
    """
    expected = {operation.position: operation for operation in plan.operations}
    actual = {
        operation.position: operation
        for cells in grid
        for operation in cells
        if operation is not None
    }

    def by_position(operation):
        return operation.position.row, operation.position.column

    matched = 0
    missing, mismatched = [], []
    for position, operation in expected.items():
        found = actual.get(position)
        if found is None:
            missing.append(operation)
        elif found != operation:
            mismatched.append((operation, found))
        else:
            matched += 1
    unexpected = [op for position, op in actual.items() if position not in expected]

    return ValidationReport(
        expected=len(expected),
        matched=matched,
        missing=tuple(sorted(missing, key=by_position)),
        mismatched=tuple(sorted(mismatched, key=lambda pair: by_position(pair[0]))),
        unexpected=tuple(sorted(unexpected, key=by_position)),
    )
