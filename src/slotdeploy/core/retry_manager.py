"""Retry logic with backoff for fallible remote operations."""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from slotdeploy.core.exceptions import (
    PoolClosedError,
    RemotePathNotFoundError,
    TransportClosedError,
)
from slotdeploy.core.utils.backoff import BackoffStrategy, get_backoff_delay

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that another attempt cannot fix
NON_RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    RemotePathNotFoundError,
    TransportClosedError,
    PoolClosedError,
)


async def retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 0.0,
    strategy: BackoffStrategy = BackoffStrategy.LINEAR,
    retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    non_retryable_exceptions: Tuple[Type[BaseException], ...] = (),
    description: Optional[str] = None,
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Execute async function with retry and backoff.

    One initial attempt is made, followed by up to ``max_retries`` retries.
    When every attempt fails the last exception is re-raised unchanged, so
    callers see the same error type they would without the retry wrapper.

    Args:
        func: Async function to execute
        max_retries: Retries after the first attempt (default: 3)
        base_delay: Base delay between retries in seconds (default: 1.0)
        max_delay: Maximum delay between retries (default: 30.0)
        jitter: Jitter factor (0.0-1.0) to add randomness (default: 0.0)
        strategy: Backoff curve (default: linear, retry n waits n * base_delay)
        retryable_exceptions: Tuple of exception types to retry on
            (default: (Exception,))
        non_retryable_exceptions: Exception types raised immediately even
            when they also match retryable_exceptions
        description: Label used in log lines (default: func.__name__)
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Exception: The last failure once retries are exhausted, or any
            non-retryable exception immediately.
    """
    if retryable_exceptions is None:
        retryable_exceptions = (Exception,)

    label = description or getattr(func, "__name__", repr(func))
    total_attempts = max(0, max_retries) + 1

    for attempt in range(total_attempts):
        try:
            result = await func(*args, **kwargs)

            if attempt > 0:
                logger.info(f"{label} succeeded on attempt {attempt + 1}/{total_attempts}")

            return result

        except retryable_exceptions as e:
            if isinstance(e, non_retryable_exceptions):
                logger.debug(f"Non-retryable exception in {label}: {type(e).__name__}")
                raise

            if attempt >= total_attempts - 1:
                logger.warning(
                    f"Retries exhausted for {label} after {total_attempts} attempts: {e}",
                    extra={"attempt": attempt + 1},
                )
                raise

            delay = get_backoff_delay(
                attempt, base_delay, max_delay, jitter=jitter, strategy=strategy
            )
            logger.warning(
                f"Retry {attempt + 1} for {label} after {delay:.2f}s: "
                f"{type(e).__name__}: {e}",
                extra={"attempt": attempt + 1, "delay": delay},
            )
            await asyncio.sleep(delay)

    # range() above always runs at least once
    raise AssertionError("unreachable")


class RetryPolicy:
    """Bounded retry wrapper shared by every transport primitive.

    The policy holds configuration only; no state survives between calls.
    ``asyncio.CancelledError`` derives from ``BaseException`` and is never
    retried.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 0.0,
        strategy: BackoffStrategy = BackoffStrategy.LINEAR,
        retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
        non_retryable_exceptions: Tuple[Type[BaseException], ...] = NON_RETRYABLE_EXCEPTIONS,
    ):
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.strategy = strategy
        self.retryable_exceptions = retryable_exceptions
        self.non_retryable_exceptions = non_retryable_exceptions

    @classmethod
    def none(cls) -> "RetryPolicy":
        """Policy that makes a single attempt."""
        return cls(max_retries=0)

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        """Build a policy from a ``RetrySettings`` model."""
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
            jitter=settings.jitter,
            strategy=settings.strategy,
        )

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (1-based), without jitter."""
        return get_backoff_delay(
            retry_number - 1,
            self.base_delay,
            self.max_delay,
            jitter=0.0,
            strategy=self.strategy,
        )

    async def execute(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        description: Optional[str] = None,
        **kwargs: Any,
    ) -> T:
        """Await ``operation(*args, **kwargs)``, retrying on failure.

        Exceptions in ``retryable_exceptions`` are retried up to
        ``max_retries`` times unless they are non-retryable (missing path,
        closed transport or pool). The last exception propagates unchanged
        once retries run out.
        """
        call = functools.partial(operation, *args, **kwargs)
        return await retry_with_backoff(
            call,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
            strategy=self.strategy,
            retryable_exceptions=self.retryable_exceptions,
            non_retryable_exceptions=self.non_retryable_exceptions,
            description=description or getattr(operation, "__name__", None),
        )

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_retries={self.max_retries}, base_delay={self.base_delay}, "
            f"strategy={self.strategy.value})"
        )
