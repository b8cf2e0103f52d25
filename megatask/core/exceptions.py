"""
Custom exception hierarchy for megatask package.

This module defines specific exception types for the failure scenarios of
the execution engine. Each type carries a severity tag that decides how it
is handled: retried, surfaced immediately, or used to stop dispatch.
"""

import asyncio
from enum import Enum
from typing import Optional


class ErrorSeverity(Enum):
    """Severity levels for different types of errors."""
    INVALID = "invalid"              # Bad operation attributes, never retried
    RECOVERABLE = "recoverable"      # Can retry with backoff
    RATE_LIMITED = "rate_limited"    # Remote side signalled backpressure
    FATAL = "fatal"                  # Request rejected, retrying will not help
    CANCELLED = "cancelled"          # Deadline or explicit abort


class MegataskError(Exception):
    """Base exception class for all megatask-related errors."""

    def __init__(self, message: str, severity: ErrorSeverity = ErrorSeverity.FATAL,
                 original_error: Optional[BaseException] = None, **kwargs):
        super().__init__(message)
        self.severity = severity
        self.original_error = original_error
        self.metadata = kwargs

    def __str__(self):
        base_msg = super().__str__()
        if self.original_error:
            return f"{base_msg} (caused by: {self.original_error})"
        return base_msg


class ValidationError(MegataskError):
    """
    An operation's own invariants do not hold.

    Raised for negative coordinates and attributes outside their
    enumerated values. Detected before dispatch.
    """

    def __init__(self, message: str = "Invalid operation", **kwargs):
        super().__init__(message, severity=ErrorSeverity.INVALID, **kwargs)


class RetryableTransportError(MegataskError):
    """
    Transient failure that can be retried.

    This includes connection failures, timeouts establishing the call
    and server-side (5xx) responses.
    """

    def __init__(self, message: str = "Transient transport error",
                 status: Optional[int] = None, endpoint: Optional[str] = None,
                 original_error: Optional[BaseException] = None,
                 severity: ErrorSeverity = ErrorSeverity.RECOVERABLE, **kwargs):
        super().__init__(
            message,
            severity=severity,
            original_error=original_error,
            status=status,
            endpoint=endpoint,
            **kwargs
        )
        self.status = status
        self.endpoint = endpoint


class RateLimitError(RetryableTransportError):
    """
    The remote side rejected the call for exceeding its rate budget (HTTP 429).

    Treated like a server error: retried with backoff.
    """

    def __init__(self, message: str = "Rate limit exceeded",
                 retry_after: Optional[float] = None, **kwargs):
        kwargs.setdefault("status", 429)
        super().__init__(
            message,
            severity=ErrorSeverity.RATE_LIMITED,
            retry_after=retry_after,
            **kwargs
        )
        self.retry_after = retry_after


class PermanentRemoteError(MegataskError):
    """
    The remote side rejected the request itself (4xx other than 429).

    Surfaced immediately, never retried.
    """

    def __init__(self, message: str = "Request rejected by remote API",
                 status: Optional[int] = None, endpoint: Optional[str] = None,
                 body: str = "", original_error: Optional[BaseException] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.FATAL,
            original_error=original_error,
            status=status,
            endpoint=endpoint,
            **kwargs
        )
        self.status = status
        self.endpoint = endpoint
        self.body = body


class CancellationError(MegataskError):
    """
    Execution was aborted by an explicit cancel or an expired deadline.

    The enclosing operation is treated as aborted, not retried.
    """

    def __init__(self, message: str = "Operation cancelled",
                 original_error: Optional[BaseException] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CANCELLED,
            original_error=original_error,
            **kwargs
        )


class PlanError(MegataskError):
    """A plan generator could not build an execution plan."""

    def __init__(self, message: str = "Unable to build execution plan",
                 original_error: Optional[BaseException] = None, **kwargs):
        super().__init__(message, severity=ErrorSeverity.FATAL,
                         original_error=original_error, **kwargs)


class ConfigurationError(MegataskError):
    """Invalid or missing configuration."""

    def __init__(self, message: str = "Invalid configuration", **kwargs):
        super().__init__(message, severity=ErrorSeverity.FATAL, **kwargs)


class ExecutionFailedError(MegataskError):
    """One or more operations of a plan failed."""

    def __init__(self, failed: int, attempted: int, **kwargs):
        super().__init__(
            f"encountered {failed} errors out of {attempted} attempted operations",
            severity=ErrorSeverity.FATAL,
            **kwargs
        )
        self.failed = failed
        self.attempted = attempted


def is_retryable_error(exc: BaseException) -> bool:
    """Default retry predicate: only transient transport failures are retried."""
    return isinstance(exc, RetryableTransportError)


def classify_exception(exc: BaseException) -> MegataskError:
    """
    Classify a generic exception into appropriate MegataskError type.

    Args:
        exc: The original exception to classify

    Returns:
        MegataskError: Classified exception with appropriate severity

    Raises:
        TypeError: for exceptions that are neither megatask errors nor
            transport failures
    """
    import aiohttp

    if isinstance(exc, MegataskError):
        return exc

    # Local cancellation of the awaiting task
    if isinstance(exc, asyncio.CancelledError):
        return CancellationError("Task cancelled", original_error=exc)

    # Rate limiting
    if isinstance(exc, aiohttp.ClientResponseError) and exc.status == 429:
        retry_after = None
        if exc.headers and 'Retry-After' in exc.headers:
            try:
                retry_after = float(exc.headers['Retry-After'])
            except (ValueError, TypeError):
                pass
        return RateLimitError("Rate limit exceeded", retry_after=retry_after, original_error=exc)

    # Server errors (5xx) - temporary issues
    if isinstance(exc, aiohttp.ClientResponseError) and exc.status >= 500:
        return RetryableTransportError(f"Server error: {exc.status}", status=exc.status,
                                       original_error=exc)

    # Client errors (4xx) - the request itself is wrong
    if isinstance(exc, aiohttp.ClientResponseError):
        return PermanentRemoteError(f"Client error: {exc.status}", status=exc.status,
                                    original_error=exc)

    # Timeouts and connectivity
    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return RetryableTransportError("Request timeout", original_error=exc)

    if isinstance(exc, (aiohttp.ClientError, OSError)):
        return RetryableTransportError("Connection failed", original_error=exc)

    raise TypeError(f"cannot classify {type(exc).__name__} as a transport failure")
