"""
Retry control for a single unit of work.

The RetryController re-executes a coroutine function with classified,
bounded, exponentially backed-off attempts. Attempts are strictly
sequential: a new attempt starts only after the previous one finished.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .cancellation import CancellationToken, cancellable_sleep, check_cancelled
from .exceptions import CancellationError, ConfigurationError, is_retryable_error

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behaviour."""
    max_attempts: int = 3               # Total attempts, including the first
    initial_delay: float = 1.0          # Seconds before the second attempt
    max_delay: float = 30.0             # Upper bound for any single delay
    multiplier: float = 2.0             # Backoff growth factor

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError("retry max attempts must be at least 1")
        if self.multiplier < 1.0:
            raise ConfigurationError("retry multiplier must be >= 1.0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("retry delays must be non-negative")

    def backoff(self, attempt: int) -> float:
        """
        Delay in seconds before ``attempt`` (1-indexed).

        No delay precedes the first attempt; afterwards the delay grows
        geometrically from ``initial_delay`` and is capped at ``max_delay``.
        """
        if attempt <= 1:
            return 0.0
        return min(self.initial_delay * self.multiplier ** (attempt - 2), self.max_delay)


class RetryController:
    """
    Execute a unit of work with classified retries.

    Stops on success, on an error the predicate refuses to retry, when
    attempts are exhausted (re-raising the last error), or on cancellation
    (raising CancellationError).
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    async def execute(
        self,
        work: Callable[[], Awaitable[Any]],
        is_retryable: Optional[Callable[[BaseException], bool]] = None,
        token: Optional[CancellationToken] = None,
        description: str = "call",
    ) -> Any:
        """
        Run ``work`` until it succeeds or retrying stops.

        Args:
            work: Coroutine function performing one attempt
            is_retryable: Predicate deciding whether an error is worth retrying
            token: Optional cancellation token
            description: Label for log lines

        Returns:
            Whatever the successful attempt returned
        """
        predicate = is_retryable or is_retryable_error
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.config.max_attempts + 1):
            delay = self.config.backoff(attempt)
            try:
                if delay > 0:
                    await cancellable_sleep(delay, token)
                check_cancelled(token)
            except CancellationError as exc:
                raise CancellationError(
                    f"Retry of {description} cancelled before attempt {attempt}",
                    original_error=last_error or exc
                )

            try:
                return await work()
            except CancellationError:
                raise
            except Exception as exc:
                last_error = exc
                if not predicate(exc):
                    logger.debug("%s failed permanently on attempt %d: %s",
                                 description, attempt, exc)
                    raise
                if attempt == self.config.max_attempts:
                    logger.error("Max attempts (%d) reached for %s. Last error: %s",
                                 self.config.max_attempts, description, exc)
                    raise
                logger.warning(
                    "Retryable error for %s on attempt %d/%d: %s. Waiting %.2fs...",
                    description, attempt, self.config.max_attempts, exc,
                    self.config.backoff(attempt + 1)
                )
