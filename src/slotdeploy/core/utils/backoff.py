import random
from enum import Enum
from typing import Callable, Dict


class BackoffStrategy(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


# attempt is 0-based: the delay before retry n uses attempt n - 1
_CURVES: Dict[BackoffStrategy, Callable[[int, float], float]] = {
    BackoffStrategy.LINEAR: lambda attempt, base: base * (attempt + 1),
    BackoffStrategy.EXPONENTIAL: lambda attempt, base: base * (2**attempt),
}


def get_backoff_delay(
    attempt: int,
    base: float = 1.0,
    max_seconds: float = 30.0,
    jitter: float = 0.0,
    strategy: BackoffStrategy = BackoffStrategy.LINEAR,
) -> float:
    """Seconds to wait after ``attempt`` failed attempts (0-based).

    The linear curve waits ``n * base`` before retry ``n``; the exponential
    curve doubles from ``base``. The result is capped at ``max_seconds``
    before ``jitter`` (a fraction, 0.2 = ±20%) is applied.
    """
    try:
        curve = _CURVES[BackoffStrategy(strategy)]
    except ValueError:
        raise ValueError(f"Unsupported backoff strategy: {strategy}") from None

    delay = min(curve(attempt, base), max_seconds)
    if jitter <= 0:
        return delay
    return delay * random.uniform(1 - jitter, 1 + jitter)
