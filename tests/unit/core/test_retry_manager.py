"""Tests for retry manager module."""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from slotdeploy.core.exceptions import RemotePathNotFoundError, TransportClosedError
from slotdeploy.core.retry_manager import RetryPolicy, retry_with_backoff
from slotdeploy.core.utils.backoff import BackoffStrategy


class TestRetryWithBackoff:
    """Test retry_with_backoff function."""

    @pytest.mark.asyncio
    async def test_successful_first_attempt(self):
        """Test successful execution on first attempt."""

        async def success_func():
            return "success"

        result = await retry_with_backoff(success_func, max_retries=3)
        assert result == "success"

    @pytest.mark.asyncio
    async def test_retryable_exception_retries(self):
        """Test that failures are retried until success."""
        attempt_count = 0

        async def failing_then_success():
            nonlocal attempt_count
            attempt_count += 1
            if attempt_count < 3:
                raise ConnectionError("Connection failed")
            return "success"

        result = await retry_with_backoff(failing_then_success, max_retries=3, base_delay=0)
        assert result == "success"
        assert attempt_count == 3

    @pytest.mark.asyncio
    async def test_final_exception_propagates_unchanged(self):
        """After exhaustion the last error is re-raised as is."""
        attempt_count = 0

        async def always_fails():
            nonlocal attempt_count
            attempt_count += 1
            raise ConnectionError(f"failure {attempt_count}")

        with pytest.raises(ConnectionError, match="failure 4"):
            await retry_with_backoff(always_fails, max_retries=3, base_delay=0)
        assert attempt_count == 4

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        attempt_count = 0

        async def missing():
            nonlocal attempt_count
            attempt_count += 1
            raise RemotePathNotFoundError("/nope")

        with pytest.raises(RemotePathNotFoundError):
            await retry_with_backoff(
                missing,
                max_retries=3,
                base_delay=0,
                non_retryable_exceptions=(RemotePathNotFoundError,),
            )
        assert attempt_count == 1

    @pytest.mark.asyncio
    async def test_exception_outside_retryable_set_not_retried(self):
        attempt_count = 0

        async def bad_value():
            nonlocal attempt_count
            attempt_count += 1
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await retry_with_backoff(
                bad_value, max_retries=3, base_delay=0, retryable_exceptions=(ConnectionError,)
            )
        assert attempt_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        attempt_count = 0

        async def cancelled():
            nonlocal attempt_count
            attempt_count += 1
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await retry_with_backoff(cancelled, max_retries=3, base_delay=0)
        assert attempt_count == 1

    @pytest.mark.asyncio
    async def test_linear_delays_between_retries(self):
        """Retry n sleeps n * base_delay."""
        func = AsyncMock(side_effect=[OSError("a"), OSError("b"), OSError("c"), "ok"])

        with patch("slotdeploy.core.retry_manager.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await retry_with_backoff(func, max_retries=3, base_delay=1.0)

        assert result == "ok"
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_each_retry_logs_warning_with_attempt(self, caplog):
        func = AsyncMock(side_effect=[OSError("flaky"), "ok"])

        with caplog.at_level(logging.WARNING, logger="slotdeploy.core.retry_manager"):
            await retry_with_backoff(func, max_retries=2, base_delay=0, description="list /site")

        retries = [r for r in caplog.records if "Retry 1" in r.getMessage()]
        assert len(retries) == 1
        assert retries[0].attempt == 1
        assert "list /site" in retries[0].getMessage()


class TestRetryPolicy:
    """Test the policy object used by transports."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.base_delay == 1.0

    def test_delay_for_is_linear(self):
        policy = RetryPolicy(base_delay=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]

    def test_none_makes_single_attempt(self):
        assert RetryPolicy.none().max_retries == 0

    def test_negative_retries_clamped(self):
        assert RetryPolicy(max_retries=-5).max_retries == 0

    def test_from_settings(self):
        from slotdeploy.config import RetrySettings

        policy = RetryPolicy.from_settings(RetrySettings(max_retries=5, base_delay=0.25))
        assert policy.max_retries == 5
        assert policy.base_delay == 0.25

    def test_from_settings_uses_configured_strategy(self):
        from slotdeploy.config import RetrySettings

        policy = RetryPolicy.from_settings(RetrySettings(base_delay=1.0, strategy="exponential"))
        assert policy.strategy is BackoffStrategy.EXPONENTIAL
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_execute_passes_arguments(self):
        async def add(a, b, scale=1):
            return (a + b) * scale

        assert await RetryPolicy.none().execute(add, 1, 2, scale=3) == 9

    @pytest.mark.asyncio
    async def test_execute_retries_then_succeeds(self):
        operation = AsyncMock(side_effect=[ConnectionError("drop"), "done"])
        policy = RetryPolicy(max_retries=1, base_delay=0)

        assert await policy.execute(operation) == "done"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_closed_transport_not_retried_by_default(self):
        operation = AsyncMock(side_effect=TransportClosedError("closed"))
        policy = RetryPolicy(max_retries=3, base_delay=0)

        with pytest.raises(TransportClosedError):
            await policy.execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_stateless_between_calls(self):
        """A failed call does not use up retries of the next one."""
        policy = RetryPolicy(max_retries=1, base_delay=0)

        first = AsyncMock(side_effect=[OSError(), OSError()])
        with pytest.raises(OSError):
            await policy.execute(first)

        second = AsyncMock(side_effect=[OSError(), "ok"])
        assert await policy.execute(second) == "ok"
