"""Shared fixtures: stub transports and fast engine components."""

import asyncio

import pytest

from megatask.apis.megaverse_api import build_create_request
from megatask.core.controllers import RetryConfig, RetryController
from megatask.core.executors import ExecutorConfig, PlanExecutor
from megatask.core.pipeline import RawResponse, ResilientCallPipeline, Transport
from megatask.core.rate_limiter import RateLimitConfig, TokenBucketRateLimiter

CANDIDATE_ID = "candidate-123"


class StubTransport(Transport):
    """
    Records every request and answers through ``responder``.

    ``responder(request, call_number)`` returns a RawResponse or an
    exception instance to raise. Defaults to 200 for everything.
    """

    def __init__(self, responder=None, latency: float = 0.0):
        self.requests = []
        self.responder = responder or (lambda request, n: RawResponse(200, {}))
        self.latency = latency
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, request, timeout=None):
        self.requests.append(request)
        call_number = len(self.requests)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            result = self.responder(request, call_number)
        finally:
            self.in_flight -= 1
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def transport():
    return StubTransport()


@pytest.fixture
def fast_limiter():
    return TokenBucketRateLimiter(RateLimitConfig(requests_per_second=1000))


@pytest.fixture
def fast_retry():
    return RetryController(RetryConfig(max_attempts=3, initial_delay=0.001,
                                       max_delay=0.005, multiplier=2.0))


@pytest.fixture
def make_executor(fast_limiter, fast_retry):
    def _make(transport, max_workers=5):
        pipeline = ResilientCallPipeline(transport, fast_limiter, fast_retry)
        return PlanExecutor(
            pipeline,
            lambda operation: build_create_request(operation, CANDIDATE_ID),
            ExecutorConfig(max_workers=max_workers),
        )
    return _make
