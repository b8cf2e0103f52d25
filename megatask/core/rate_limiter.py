"""
Token bucket rate limiting for outbound API calls.

One limiter instance is shared by every caller in the process, so the
outbound call rate stays bounded no matter how many workers are active.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .cancellation import CancellationToken, cancellable_sleep, check_cancelled
from .exceptions import CancellationError, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for the token bucket."""
    requests_per_second: float = 2.0        # Steady admission rate


class TokenBucketRateLimiter:
    """
    Process-wide token bucket limiter.

    Features:
    - Steady rate in requests per second
    - Burst capacity of one second's worth of tokens
    - Continuous replenishment, capped at capacity
    - Safe to share between coroutines and threads
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()
        self._validate_rate(self.config.requests_per_second)
        self._lock = threading.Lock()
        self._rate = float(self.config.requests_per_second)
        self._capacity = self._capacity_for(self._rate)
        self._tokens = float(self._capacity)
        self._last_refill = time.monotonic()

    @staticmethod
    def _validate_rate(rps: float) -> None:
        if rps is None or rps <= 0:
            raise ConfigurationError(f"rate limit must be positive, got {rps}")

    @staticmethod
    def _capacity_for(rps: float) -> int:
        return max(1, int(rps))

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def tokens(self) -> float:
        """Current token estimate."""
        with self._lock:
            self._refill(time.monotonic())
            return self._tokens

    def _refill(self, now: float) -> None:
        # Caller holds self._lock
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
            self._last_refill = now

    def _try_acquire(self) -> float:
        """
        Take a token if one is available.

        Returns:
            float: 0.0 when a token was consumed, otherwise the number of
                seconds until the next token is due.
        """
        with self._lock:
            self._refill(time.monotonic())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self._rate

    def allow(self) -> bool:
        """Non-blocking check: consume a token if one is available right now."""
        return self._try_acquire() == 0.0

    async def wait(self, token: Optional[CancellationToken] = None) -> None:
        """
        Wait until a token is available and consume it.

        Raises:
            CancellationError: if the token is cancelled or its deadline
                expires before a token becomes available.
        """
        while True:
            check_cancelled(token)
            delay = self._try_acquire()
            if delay == 0.0:
                return
            logger.debug("Rate limiter: waiting %.3fs for next token", delay)
            try:
                await cancellable_sleep(delay, token)
            except CancellationError as exc:
                raise CancellationError("Rate limiter wait cancelled", original_error=exc)

    def set_rate(self, requests_per_second: float) -> None:
        """Change the admission rate without resetting the token count."""
        self._validate_rate(requests_per_second)
        with self._lock:
            self._refill(time.monotonic())
            self._rate = float(requests_per_second)
            self._capacity = self._capacity_for(self._rate)
            self._tokens = min(self._tokens, self._capacity)
            self.config.requests_per_second = self._rate
        logger.info("Rate limit set to %.2f requests/s (burst %d)", self._rate, self._capacity)

    def get_recommended_delay(self) -> float:
        """Get steady-state delay between requests in seconds."""
        return 1.0 / self._rate

    def get_state(self) -> Dict[str, Any]:
        return {
            "requests_per_second": self._rate,
            "capacity": self._capacity,
            "tokens": self.tokens,
        }

    def reset(self) -> None:
        """Refill the bucket to capacity."""
        with self._lock:
            self._tokens = float(self._capacity)
            self._last_refill = time.monotonic()
