"""
Plan executor: drives every operation of an ExecutionPlan through the
resilient call pipeline.

Three scheduling modes are supported:
- SEQUENTIAL: one operation at a time, in plan order
- BOUNDED_PARALLEL: a fixed pool of worker coroutines draining a shared queue
- BATCHED: contiguous groups in plan order, each processed sequentially

A failing operation never aborts its siblings; failures are folded into a
single AggregateResult. Only cancellation stops dispatch early.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .cancellation import CancellationToken
from .exceptions import CancellationError, MegataskError
from .models import (
    AggregateResult, CreateOperation, ExecutionMode, ExecutionPlan,
    OperationError, describe
)
from .pipeline import ApiRequest, ResilientCallPipeline

logger = logging.getLogger(__name__)

RequestBuilder = Callable[[CreateOperation], ApiRequest]


@dataclass
class ExecutorConfig:
    """Configuration for plan execution."""
    max_workers: int = 5                # Pool size for BOUNDED_PARALLEL
    show_progress: bool = False         # Render a tqdm progress bar


@dataclass
class _WorkerReport:
    attempted: int = 0
    errors: List[OperationError] = field(default_factory=list)
    cancelled: bool = False

    def merge(self, other: "_WorkerReport") -> None:
        self.attempted += other.attempted
        self.errors.extend(other.errors)
        self.cancelled = self.cancelled or other.cancelled


class PlanExecutor:
    """
    Execution orchestrator.

    Args:
        pipeline: Resilient call pipeline shared by every mode
        request_builder: Maps an operation to its ApiRequest
        config: Executor configuration
    """

    def __init__(
        self,
        pipeline: ResilientCallPipeline,
        request_builder: RequestBuilder,
        config: Optional[ExecutorConfig] = None,
    ):
        self.pipeline = pipeline
        self.request_builder = request_builder
        self.config = config or ExecutorConfig()
        if self.config.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.config.max_workers}")

        self.progress_bar: Optional[tqdm] = None
        self.worker_tokens: Dict[int, CancellationToken] = {}

    def configure_rate(self, requests_per_second: float) -> None:
        """Change the shared outbound call rate."""
        self.pipeline.configure_rate(requests_per_second)

    def cancel_worker(self, worker_id: int, reason: str = "worker cancelled") -> None:
        """Stop one BOUNDED_PARALLEL worker; the rest of the pool keeps going."""
        token = self.worker_tokens.get(worker_id)
        if token is None:
            raise KeyError(f"No active worker {worker_id}")
        token.cancel(reason)

    def _init_progress_bar(self, total: int) -> None:
        if self.config.show_progress:
            self.progress_bar = tqdm(total=total, desc="Progress", ncols=100)

    def _update_progress_bar(self, failed: bool) -> None:
        if self.progress_bar:
            self.progress_bar.update(1)
            if failed:
                self.progress_bar.set_postfix_str("last: failed")

    def _close_progress_bar(self) -> None:
        if self.progress_bar:
            self.progress_bar.close()
            self.progress_bar = None

    async def run(self, plan: ExecutionPlan,
                  token: Optional[CancellationToken] = None) -> AggregateResult:
        """
        Realize ``plan`` and summarize the outcome.

        Returns:
            AggregateResult: attempted/failed counts and per-operation errors
                in plan order
        """
        logger.info("Executing %s: %d operations (%s)",
                    plan.name, len(plan), plan.mode.value)
        self._init_progress_bar(len(plan))
        try:
            if plan.mode is ExecutionMode.BOUNDED_PARALLEL:
                report = await self._run_parallel(plan.operations, token)
            elif plan.mode is ExecutionMode.BATCHED:
                report = await self._run_batched(plan, token)
            else:
                report = await self._run_sequential(plan.operations, token)
        finally:
            self._close_progress_bar()

        errors = tuple(sorted(report.errors, key=lambda e: e.index))
        result = AggregateResult(
            attempted=report.attempted,
            failed=len(errors),
            errors=errors,
            cancelled=report.cancelled,
        )
        if result.cancelled:
            logger.warning("%s cancelled after %d/%d operations (%d failed)",
                           plan.name, result.attempted, len(plan), result.failed)
        elif result.failed:
            logger.warning("%s finished: encountered %d errors in %d operations",
                           plan.name, result.failed, result.attempted)
        else:
            logger.info("%s finished: %d operations succeeded", plan.name, result.attempted)
        return result

    async def _execute_operation(
        self,
        index: int,
        operation: CreateOperation,
        token: Optional[CancellationToken],
        label: str = "",
    ) -> Optional[OperationError]:
        """Validate, dispatch and settle one operation."""
        error: Optional[BaseException] = None
        try:
            operation.validate()
            logger.info("%sCreating %s", label, describe(operation))
            await self.pipeline.call(self.request_builder(operation), token)
        except MegataskError as exc:
            error = exc
        except Exception as exc:
            logger.exception("%sUnexpected error creating %s", label, describe(operation))
            error = exc

        self._update_progress_bar(failed=error is not None)
        if error is None:
            return None

        message = f"{label}Failed to create {describe(operation)}: {error}"
        if self.progress_bar:
            tqdm.write(message)
        logger.error(message)
        return OperationError(index=index, operation=operation, error=error)

    async def _run_sequential(
        self,
        operations: Sequence[CreateOperation],
        token: Optional[CancellationToken],
        start: int = 0,
    ) -> _WorkerReport:
        report = _WorkerReport()
        total = start + len(operations)
        for offset, operation in enumerate(operations):
            if token is not None and token.cancelled:
                logger.warning("Cancellation observed (%s); stopping dispatch", token.reason)
                report.cancelled = True
                break

            index = start + offset
            report.attempted += 1
            error = await self._execute_operation(index, operation, token,
                                                  label=f"[{index + 1}/{total}] ")
            if error is not None:
                report.errors.append(error)
                if isinstance(error.error, CancellationError):
                    report.cancelled = True
                    break
        return report

    async def _run_batched(self, plan: ExecutionPlan,
                           token: Optional[CancellationToken]) -> _WorkerReport:
        report = _WorkerReport()
        for start, batch in plan.batches():
            logger.info("Processing batch %d-%d of %d",
                        start + 1, start + len(batch), len(plan))
            report.merge(await self._run_sequential(batch, token, start=start))
            if report.cancelled:
                break
        return report

    async def _run_parallel(
        self,
        operations: Sequence[CreateOperation],
        token: Optional[CancellationToken],
    ) -> _WorkerReport:
        task_queue: "asyncio.Queue[Tuple[int, CreateOperation]]" = asyncio.Queue()
        for index, operation in enumerate(operations):
            task_queue.put_nowait((index, operation))

        root = token or CancellationToken()
        self.worker_tokens = {
            worker_id: root.child() for worker_id in range(self.config.max_workers)
        }
        try:
            workers = [
                asyncio.create_task(self._worker_coroutine(worker_id, task_queue, worker_token))
                for worker_id, worker_token in self.worker_tokens.items()
            ]
            results = await asyncio.gather(*workers)
        finally:
            for worker_token in self.worker_tokens.values():
                root.release(worker_token)
            self.worker_tokens = {}

        report = _WorkerReport()
        for worker_report in results:
            report.merge(worker_report)
        # A single stopped worker does not cancel the run while others drained the queue
        report.cancelled = root.cancelled or not task_queue.empty()
        return report

    async def _worker_coroutine(
        self,
        worker_id: int,
        task_queue: "asyncio.Queue[Tuple[int, CreateOperation]]",
        token: CancellationToken,
    ) -> _WorkerReport:
        """Individual worker: drains the queue until empty or cancelled."""
        report = _WorkerReport()
        label = f"[Worker {worker_id}] "
        while True:
            if token.cancelled:
                logger.warning("%sstopping: %s", label, token.reason)
                report.cancelled = True
                break
            try:
                index, operation = task_queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            report.attempted += 1
            try:
                error = await self._execute_operation(index, operation, token, label=label)
            finally:
                task_queue.task_done()
            if error is not None:
                report.errors.append(error)
                if isinstance(error.error, CancellationError):
                    report.cancelled = True
                    break
        return report
