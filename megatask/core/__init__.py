"""
Core module for megatask package.

This module contains the resilient execution engine:
- Custom exception hierarchy
- Token bucket rate limiting
- Retry controller with exponential backoff
- Resilient call pipeline
- Plan executor (sequential, bounded-parallel, batched)
"""

from .exceptions import (
    MegataskError,
    ErrorSeverity,
    ValidationError,
    RetryableTransportError,
    RateLimitError,
    PermanentRemoteError,
    CancellationError,
    PlanError,
    ConfigurationError,
    ExecutionFailedError,
    classify_exception,
    is_retryable_error
)

from .models import (
    Position, ObjectKind, SoloonColor, ComethDirection,
    Polyanet, Soloon, Cometh, CreateOperation,
    ExecutionMode, ExecutionPlan, CallOutcome, OutcomeKind,
    OperationError, AggregateResult, ValidationReport
)
from .cancellation import CancellationToken
from .rate_limiter import TokenBucketRateLimiter, RateLimitConfig
from .controllers import RetryController, RetryConfig
from .pipeline import ApiRequest, RawResponse, Transport, ResilientCallPipeline
from .executors import PlanExecutor, ExecutorConfig

__all__ = [
    # Exceptions
    'MegataskError',
    'ErrorSeverity',
    'ValidationError',
    'RetryableTransportError',
    'RateLimitError',
    'PermanentRemoteError',
    'CancellationError',
    'PlanError',
    'ConfigurationError',
    'ExecutionFailedError',
    'classify_exception',
    'is_retryable_error',
    # Data model
    'Position',
    'ObjectKind',
    'SoloonColor',
    'ComethDirection',
    'Polyanet',
    'Soloon',
    'Cometh',
    'CreateOperation',
    'ExecutionMode',
    'ExecutionPlan',
    'CallOutcome',
    'OutcomeKind',
    'OperationError',
    'AggregateResult',
    'ValidationReport',
    # Core components
    'CancellationToken',
    'TokenBucketRateLimiter',
    'RateLimitConfig',
    'RetryController',
    'RetryConfig',
    'ApiRequest',
    'RawResponse',
    'Transport',
    'ResilientCallPipeline',
    'PlanExecutor',
    'ExecutorConfig'
]
