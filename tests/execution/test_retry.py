"""Tests for infraspine.execution.retry."""

from __future__ import annotations

from infraspine.core.errors import NotReadyError
from infraspine.execution.retry import ConstantBackoff, ExponentialBackoff, NoRetry


class TestExponentialBackoff:
    """Tests for exponential backoff."""

    def test_defaults(self):
        strategy = ExponentialBackoff()
        assert strategy.max_retries == 10
        assert strategy.base_delay == 1.0
        assert strategy.max_delay == 30.0
        assert strategy.multiplier == 2.0
        assert strategy.jitter is True
        assert strategy.jitter_range == 0.25

    def test_delays_grow_and_cap(self):
        strategy = ExponentialBackoff(base_delay=1.0, max_delay=10.0, jitter=False)
        assert [strategy.next_delay(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(50):
            assert 3.0 <= strategy.next_delay(0) <= 5.0

    def test_should_retry_bound(self):
        strategy = ExponentialBackoff(max_retries=2)
        assert strategy.should_retry(0, NotReadyError("x"))
        assert strategy.should_retry(1)
        assert not strategy.should_retry(2)


class TestConstantBackoff:
    def test_constant_delay(self):
        strategy = ConstantBackoff(max_retries=3, delay=0.5)
        assert {strategy.next_delay(i) for i in range(3)} == {0.5}
        assert strategy.should_retry(2)
        assert not strategy.should_retry(3)


class TestNoRetry:
    def test_never_retries(self):
        strategy = NoRetry()
        assert strategy.next_delay(0) == 0.0
        assert not strategy.should_retry(0, NotReadyError("x"))
