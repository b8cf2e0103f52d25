"""
Resilient call pipeline.

Wraps exactly one outbound call with the shared rate limiter and a retry
controller, and translates transport and HTTP results into the
success / retryable / permanent taxonomy.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from .cancellation import CancellationToken
from .controllers import RetryController
from .exceptions import (
    CancellationError, PermanentRemoteError, RateLimitError, RetryableTransportError,
    classify_exception, is_retryable_error
)
from .models import CallOutcome
from .rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


@dataclass(frozen=True)
class ApiRequest:
    """Transport-neutral description of one remote call."""
    method: str
    endpoint: str
    payload: Optional[Dict[str, Any]] = None

    def __str__(self):
        return f"{self.method} {self.endpoint}"


@dataclass
class RawResponse:
    """Status and decoded body of a completed remote call."""
    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body if isinstance(self.body, str) else str(self.body or "")


class Transport(ABC):
    """Performs remote calls. Must not raise on non-2xx statuses."""

    @abstractmethod
    async def send(self, request: ApiRequest, timeout: Optional[float] = None) -> RawResponse:
        """
        Send ``request`` and return the raw response.

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError, OSError: when the
                call could not be completed at the transport level
        """
        pass


def _retry_after(headers: Dict[str, str]) -> Optional[float]:
    value = headers.get("Retry-After") if headers else None
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def classify_response(request: ApiRequest, response: RawResponse) -> CallOutcome:
    """Map an HTTP status onto a CallOutcome."""
    status = response.status
    if 200 <= status < 300:
        return CallOutcome.success(response)

    message = f"{request} returned {status}"
    if response.text:
        message = f"{message}: {response.text}"
    if status == 429:
        return CallOutcome.retryable(RateLimitError(
            message, retry_after=_retry_after(response.headers),
            endpoint=request.endpoint
        ))
    if status >= 500:
        return CallOutcome.retryable(RetryableTransportError(
            message, status=status, endpoint=request.endpoint
        ))
    return CallOutcome.permanent(PermanentRemoteError(
        message, status=status, endpoint=request.endpoint, body=response.text
    ))


def classify_transport_error(request: ApiRequest, exc: BaseException) -> CallOutcome:
    """Map a transport-level exception onto a CallOutcome."""
    error = classify_exception(exc)
    if isinstance(error, RetryableTransportError):
        error.endpoint = error.endpoint or request.endpoint
        return CallOutcome.retryable(error)
    return CallOutcome.permanent(error)


class ResilientCallPipeline:
    """
    Rate limiter + retry controller around a transport.

    Every attempt, including retries, waits on the shared limiter before
    reaching the transport.
    """

    def __init__(
        self,
        transport: Transport,
        rate_limiter: TokenBucketRateLimiter,
        retry_controller: Optional[RetryController] = None,
    ):
        self.transport = transport
        self.rate_limiter = rate_limiter
        self.retry_controller = retry_controller or RetryController()

    def configure_rate(self, requests_per_second: float) -> None:
        self.rate_limiter.set_rate(requests_per_second)

    async def attempt(self, request: ApiRequest,
                      token: Optional[CancellationToken] = None) -> CallOutcome:
        """One rate-limited attempt, classified."""
        await self.rate_limiter.wait(token)
        timeout = token.remaining() if token is not None else None
        if timeout is not None and timeout <= 0:
            raise CancellationError(f"Operation cancelled: deadline exceeded before {request}")
        try:
            response = await self.transport.send(request, timeout=timeout)
        except TRANSPORT_ERRORS as exc:
            return classify_transport_error(request, exc)
        return classify_response(request, response)

    async def call(self, request: ApiRequest,
                   token: Optional[CancellationToken] = None) -> RawResponse:
        """
        Execute ``request`` with rate limiting and classified retries.

        Returns:
            RawResponse: the accepted response

        Raises:
            PermanentRemoteError: the request was rejected
            RetryableTransportError: transient failures outlasted the retries
            CancellationError: the token was cancelled
        """
        async def work():
            outcome = await self.attempt(request, token)
            if outcome.ok:
                return outcome.value
            raise outcome.cause

        return await self.retry_controller.execute(
            work, is_retryable=is_retryable_error, token=token, description=str(request)
        )
