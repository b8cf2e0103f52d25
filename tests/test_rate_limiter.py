"""Tests for the token bucket rate limiter."""

import asyncio
import time

import pytest

from megatask.core.cancellation import CancellationToken
from megatask.core.exceptions import CancellationError, ConfigurationError
from megatask.core.rate_limiter import RateLimitConfig, TokenBucketRateLimiter


def limiter(rps):
    return TokenBucketRateLimiter(RateLimitConfig(requests_per_second=rps))


class TestAllow:

    def test_burst_equals_one_second_of_tokens(self):
        rl = limiter(5)
        assert rl.capacity == 5
        assert [rl.allow() for _ in range(6)] == [True] * 5 + [False]

    def test_fractional_rate_keeps_capacity_of_one(self):
        rl = limiter(0.5)
        assert rl.capacity == 1
        assert rl.allow()
        assert not rl.allow()

    def test_tokens_regenerate_over_time(self):
        rl = limiter(20)
        for _ in range(20):
            assert rl.allow()
        assert not rl.allow()
        time.sleep(0.12)
        assert rl.allow()

    def test_tokens_capped_at_capacity(self):
        rl = limiter(3)
        time.sleep(0.2)
        assert rl.tokens == pytest.approx(3)

    @pytest.mark.parametrize("rps", [0, -1])
    def test_rejects_non_positive_rate(self, rps):
        with pytest.raises(ConfigurationError):
            limiter(rps)


class TestWait:

    @pytest.mark.asyncio
    async def test_returns_immediately_with_tokens(self):
        rl = limiter(10)
        start = time.monotonic()
        await rl.wait()
        assert time.monotonic() - start < 0.05

    @pytest.mark.asyncio
    async def test_lower_bound_for_sequential_waits(self):
        # N=30 waits, capacity 20, rate 20 -> at least (30 - 20) / 20 = 0.5s
        rl = limiter(20)
        start = time.monotonic()
        for _ in range(30):
            await rl.wait()
        assert time.monotonic() - start >= 0.5 * 0.95

    @pytest.mark.asyncio
    async def test_concurrent_waiters_do_not_share_tokens(self):
        rl = limiter(10)
        start = time.monotonic()
        await asyncio.gather(*(rl.wait() for _ in range(15)))
        assert time.monotonic() - start >= 0.5 * 0.95
        assert rl.tokens < 1

    @pytest.mark.asyncio
    async def test_cancel_interrupts_wait(self):
        rl = limiter(1)
        assert rl.allow()
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel, "abort")

        start = time.monotonic()
        with pytest.raises(CancellationError):
            await rl.wait(token)
        assert time.monotonic() - start < 0.5

    @pytest.mark.asyncio
    async def test_deadline_shorter_than_wait_fails_fast(self):
        rl = limiter(1)
        assert rl.allow()
        token = CancellationToken(timeout=0.05)

        start = time.monotonic()
        with pytest.raises(CancellationError):
            await rl.wait(token)
        assert time.monotonic() - start < 0.5

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self):
        rl = limiter(10)
        token = CancellationToken()
        token.cancel()
        with pytest.raises(CancellationError):
            await rl.wait(token)
        assert rl.tokens == pytest.approx(10)


class TestSetRate:

    def test_does_not_reset_tokens(self):
        rl = limiter(10)
        for _ in range(4):
            rl.allow()
        rl.set_rate(20)
        assert rl.rate == 20
        assert rl.capacity == 20
        assert 5.9 <= rl.tokens < 7

    def test_lower_rate_clamps_to_new_capacity(self):
        rl = limiter(10)
        rl.set_rate(2)
        assert rl.tokens == pytest.approx(2)

    @pytest.mark.asyncio
    async def test_applies_to_next_wait(self):
        rl = limiter(1)
        assert rl.allow()
        rl.set_rate(100)
        start = time.monotonic()
        await rl.wait()
        assert time.monotonic() - start < 0.2

    def test_rejects_non_positive_rate(self):
        rl = limiter(1)
        with pytest.raises(ConfigurationError):
            rl.set_rate(0)
        assert rl.rate == 1

    def test_state_and_reset(self):
        rl = limiter(4)
        rl.allow()
        rl.reset()
        state = rl.get_state()
        assert state["requests_per_second"] == 4
        assert state["capacity"] == 4
        assert state["tokens"] == pytest.approx(4)
        assert rl.get_recommended_delay() == pytest.approx(0.25)
