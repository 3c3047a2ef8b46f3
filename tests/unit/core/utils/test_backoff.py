"""Tests for backoff delay calculation."""

import pytest

from slotdeploy.core.utils.backoff import BackoffStrategy, get_backoff_delay


class TestGetBackoffDelay:
    """Test delay curves."""

    def test_linear_is_default(self):
        """Retry n waits n * base."""
        delays = [get_backoff_delay(attempt, base=1.0) for attempt in range(3)]
        assert delays == [1.0, 2.0, 3.0]

    def test_exponential(self):
        delays = [
            get_backoff_delay(a, base=0.5, strategy=BackoffStrategy.EXPONENTIAL)
            for a in range(4)
        ]
        assert delays == [0.5, 1.0, 2.0, 4.0]

    def test_strategy_accepts_plain_string(self):
        assert get_backoff_delay(2, base=1.0, strategy="exponential") == 4.0

    def test_clamped_to_max(self):
        assert get_backoff_delay(100, base=1.0, max_seconds=5.0) == 5.0

    def test_jitter_stays_within_band(self):
        for _ in range(50):
            delay = get_backoff_delay(1, base=1.0, jitter=0.2)
            assert 1.6 <= delay <= 2.4

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValueError):
            get_backoff_delay(0, strategy="bogus")
