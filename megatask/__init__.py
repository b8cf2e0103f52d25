# Core execution engine
from .core.executors import PlanExecutor, ExecutorConfig
from .core.rate_limiter import TokenBucketRateLimiter as RateLimiter
from .core.controllers import RetryController, RetryConfig
from .core.pipeline import ResilientCallPipeline, Transport, ApiRequest, RawResponse
from .core.cancellation import CancellationToken
from .core.models import (
    Position,
    Polyanet,
    Soloon,
    Cometh,
    SoloonColor,
    ComethDirection,
    ExecutionMode,
    ExecutionPlan,
    AggregateResult
)
from .core.exceptions import (
    MegataskError,
    ValidationError,
    RetryableTransportError,
    RateLimitError,
    PermanentRemoteError,
    CancellationError,
    PlanError,
    ConfigurationError,
    ExecutionFailedError
)

# Megaverse API, patterns and entry points
from . import apis
from .patterns import CrossPattern, LogoPattern
from .easy_use import Engine, run_phase1, run_phase2, clear_megaverse, validate_megaverse
