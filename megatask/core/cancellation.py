"""
Cooperative cancellation for plan execution.

A single CancellationToken carries both an explicit abort and an optional
deadline. The rate limiter wait, the retry backoff sleep and the
orchestrator's dispatch loop all observe the same token.
"""

import asyncio
import time
from typing import List, Optional

from .exceptions import CancellationError


class CancellationToken:
    """
    Abort signal with an optional deadline.

    Child tokens observe their parent: cancelling the parent cancels every
    child, while cancelling a child leaves the parent and siblings alone.
    """

    def __init__(self, timeout: Optional[float] = None,
                 parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._children: List["CancellationToken"] = []
        self.parent = parent
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            if self.deadline is None or parent.deadline < self.deadline:
                self.deadline = parent.deadline

    def child(self, timeout: Optional[float] = None) -> "CancellationToken":
        """Create a scope that is cancelled together with this token."""
        token = CancellationToken(timeout=timeout, parent=self)
        self._children.append(token)
        if self._event.is_set():
            token.cancel(self._reason)
        return token

    def release(self, token: "CancellationToken") -> None:
        """Stop propagating cancellation to ``token``, a finished child scope."""
        if token in self._children:
            self._children.remove(token)

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason or "cancelled"
        self._event.set()
        for token in self._children:
            token.cancel(self._reason)

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        if self.expired:
            return "deadline exceeded"
        return None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationError(f"Operation cancelled: {self.reason}")

    async def sleep(self, delay: float) -> None:
        """
        Sleep for ``delay`` seconds unless cancelled first.

        Raises:
            CancellationError: if the token is cancelled before or during
                the sleep, or if the sleep would run past the deadline.
        """
        self.raise_if_cancelled()
        if delay <= 0:
            await asyncio.sleep(0)
            return

        remaining = self.remaining()
        if remaining is not None and delay > remaining:
            raise CancellationError(
                f"Operation cancelled: deadline exceeded "
                f"(would wait {delay:.3f}s, {remaining:.3f}s left)"
            )

        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise CancellationError(f"Operation cancelled: {self.reason}")


async def cancellable_sleep(delay: float, token: Optional[CancellationToken] = None) -> None:
    """asyncio.sleep that honours an optional CancellationToken."""
    if token is None:
        await asyncio.sleep(max(0.0, delay))
    else:
        await token.sleep(delay)


def check_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
