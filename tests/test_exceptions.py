"""Tests for the exception taxonomy and transport error classification."""

import asyncio

import aiohttp
import pytest

from megatask.core.exceptions import (
    CancellationError, ErrorSeverity, PermanentRemoteError, RateLimitError,
    RetryableTransportError, ValidationError, classify_exception, is_retryable_error
)


class TestClassifyException:

    @pytest.mark.parametrize("exc", [
        aiohttp.ClientConnectionError("refused"),
        aiohttp.ServerTimeoutError("slow"),
        asyncio.TimeoutError(),
        ConnectionResetError("reset"),
    ])
    def test_transport_failures_are_retryable(self, exc):
        error = classify_exception(exc)
        assert isinstance(error, RetryableTransportError)
        assert error.severity is ErrorSeverity.RECOVERABLE
        assert error.original_error is exc

    def test_response_errors_by_status(self):
        def response_error(status, headers=None):
            return aiohttp.ClientResponseError(None, (), status=status, headers=headers)

        limited = classify_exception(response_error(429, {"Retry-After": "3"}))
        assert isinstance(limited, RateLimitError)
        assert limited.retry_after == 3.0
        assert isinstance(classify_exception(response_error(502)), RetryableTransportError)
        assert isinstance(classify_exception(response_error(403)), PermanentRemoteError)

    def test_task_cancellation(self):
        assert isinstance(classify_exception(asyncio.CancelledError()), CancellationError)

    def test_megatask_errors_pass_through(self):
        error = ValidationError("bad")
        assert classify_exception(error) is error

    @pytest.mark.parametrize("exc", [ValueError("x"), KeyError("k"), RuntimeError("r")])
    def test_non_transport_errors_are_rejected(self, exc):
        with pytest.raises(TypeError):
            classify_exception(exc)


class TestRetryPredicate:

    def test_only_transport_errors_are_retryable(self):
        assert is_retryable_error(RetryableTransportError("down"))
        assert is_retryable_error(RateLimitError("slow down"))
        assert not is_retryable_error(PermanentRemoteError("no"))
        assert not is_retryable_error(ValidationError("bad"))
        assert not is_retryable_error(CancellationError())
        assert not is_retryable_error(ValueError("x"))
