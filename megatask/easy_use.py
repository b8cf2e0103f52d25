"""
One-call entry points that wire the whole engine together.

``Engine`` is the composition root: one aiohttp client, one shared rate
limiter, one pipeline, the API facade and the plan executor. The
``run_*`` helpers open an engine, run a pattern under the configured
execution deadline and close it again.
"""

import asyncio
import logging
from typing import Optional

from .apis.megaverse_api import ClearResult, MegaverseAPI, MegaverseClient
from .config import Settings, load_settings
from .core.cancellation import CancellationToken
from .core.controllers import RetryController
from .core.executors import PlanExecutor
from .core.exceptions import ConfigurationError
from .core.models import AggregateResult, ExecutionMode, ValidationReport
from .core.pipeline import ResilientCallPipeline, Transport
from .core.rate_limiter import TokenBucketRateLimiter
from .patterns import CrossPattern, LogoPattern, PatternStrategy, compare_with_plan

logger = logging.getLogger(__name__)


class Engine:
    """
    Wired-up execution engine.

    Args:
        settings: Validated settings
        transport: Optional transport override (defaults to MegaverseClient)
    """

    def __init__(self, settings: Settings, transport: Optional[Transport] = None):
        self.settings = settings
        self.transport = transport or MegaverseClient(
            base_url=settings.api.base_url, timeout=settings.api.timeout
        )
        self.rate_limiter = TokenBucketRateLimiter(settings.api.rate_limit)
        self.pipeline = ResilientCallPipeline(
            self.transport, self.rate_limiter, RetryController(settings.api.retry)
        )
        self.api = MegaverseAPI(self.pipeline, settings.api.candidate_id)
        self.executor = PlanExecutor(
            self.pipeline, self.api.build_request, settings.execution.executor_config()
        )

    async def __aenter__(self) -> "Engine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if isinstance(self.transport, MegaverseClient):
            await self.transport.close()

    def configure_rate(self, requests_per_second: float) -> None:
        self.executor.configure_rate(requests_per_second)

    def new_token(self) -> CancellationToken:
        """Cancellation token bounded by the configured execution timeout."""
        return CancellationToken(timeout=self.settings.execution.timeout)

    async def execute(self, strategy: PatternStrategy,
                      token: Optional[CancellationToken] = None) -> AggregateResult:
        """Generate the strategy's plan and run it."""
        token = token or self.new_token()
        logger.info("Executing strategy: %s", strategy.name)
        plan = await strategy.generate_plan(token)
        logger.info("Generated plan with %d objects", len(plan))
        return await self.executor.run(plan, token)

    async def validate(self, strategy: PatternStrategy,
                       token: Optional[CancellationToken] = None) -> ValidationReport:
        """Compare the current megaverse with the cells the strategy would create."""
        token = token or self.new_token()
        plan = await strategy.generate_plan(token)
        grid = await self.api.get_current_map(token)
        report = compare_with_plan(plan, grid)
        if report.ok:
            logger.info("Validation of %s passed: %d cells match", strategy.name, report.matched)
        else:
            logger.warning("Validation of %s failed: %d missing, %d mismatched, %d unexpected",
                           strategy.name, len(report.missing), len(report.mismatched),
                           len(report.unexpected))
        return report


async def _run_strategy(settings: Settings, make_strategy) -> AggregateResult:
    async with Engine(settings) as engine:
        return await engine.execute(make_strategy(engine))


def _resolve(settings: Optional[Settings], candidate_id: Optional[str]) -> Settings:
    settings = settings or load_settings(require_candidate=candidate_id is None)
    if candidate_id:
        settings.api.candidate_id = candidate_id
        settings.validate()
    return settings


def run_phase1(
    settings: Optional[Settings] = None,
    candidate_id: Optional[str] = None,
    mode: ExecutionMode = ExecutionMode.BOUNDED_PARALLEL,
) -> AggregateResult:
    """Create the phase 1 Polyanet cross."""
    settings = _resolve(settings, candidate_id)
    return asyncio.run(_run_strategy(settings, lambda engine: CrossPattern(mode=mode)))


def run_phase2(
    settings: Optional[Settings] = None,
    candidate_id: Optional[str] = None,
    mode: ExecutionMode = ExecutionMode.BOUNDED_PARALLEL,
) -> AggregateResult:
    """Render the phase 2 logo from the remote goal map."""
    settings = _resolve(settings, candidate_id)
    return asyncio.run(_run_strategy(
        settings,
        lambda engine: LogoPattern(engine.api, mode=mode,
                                   batch_size=settings.execution.batch_size)
    ))


def clear_megaverse(
    width: int,
    height: int,
    settings: Optional[Settings] = None,
    candidate_id: Optional[str] = None,
) -> ClearResult:
    """Delete every object in a ``width`` x ``height`` megaverse."""
    settings = _resolve(settings, candidate_id)

    async def _clear():
        async with Engine(settings) as engine:
            return await engine.api.clear(width, height, engine.new_token())

    return asyncio.run(_clear())


PHASE_ALIASES = {
    "phase1": "phase1", "cross": "phase1", "x": "phase1",
    "phase2": "phase2", "logo": "phase2",
}


def _strategy_for(phase: str, engine: Engine) -> PatternStrategy:
    resolved = PHASE_ALIASES.get(phase.lower())
    if resolved == "phase1":
        return CrossPattern()
    if resolved == "phase2":
        return LogoPattern(engine.api, batch_size=engine.settings.execution.batch_size)
    raise ConfigurationError(f"unknown phase '{phase}' (expected phase1 or phase2)")


def validate_megaverse(
    phase: str = "phase1",
    settings: Optional[Settings] = None,
    candidate_id: Optional[str] = None,
) -> ValidationReport:
    """Check the current megaverse against the phase 1 cross or the phase 2 goal."""
    settings = _resolve(settings, candidate_id)

    async def _validate():
        async with Engine(settings) as engine:
            return await engine.validate(_strategy_for(phase, engine))

    return asyncio.run(_validate())
