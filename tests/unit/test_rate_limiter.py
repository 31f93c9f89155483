"""
Unit Tests for Submission Pacing and the Token Bucket

Reliability Level: SOVEREIGN TIER

Clocks and sleeps are injected; no test waits in real time.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.ledger.rate_limiter import ExponentialBackoff, SubmissionPacer, TokenBucket


class FakeClock:
    """Manual monotonic clock; sleep() advances it."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestTokenBucket:

    def test_consume_until_empty(self):
        clock = FakeClock()
        bucket = TokenBucket(capacity=2, refill_rate=1.0, clock=clock)
        assert bucket.consume()
        assert bucket.consume()
        assert not bucket.consume()

    def test_refill_over_time(self):
        clock = FakeClock()
        bucket = TokenBucket(capacity=1, refill_rate=2.0, clock=clock)
        assert bucket.consume()
        assert bucket.seconds_until_available() == pytest.approx(0.5)
        clock.now += 0.5
        assert bucket.consume()

    def test_backoff_grows_with_failures(self):
        clock = FakeClock()
        bucket = TokenBucket(capacity=1, refill_rate=0.001, clock=clock)
        bucket.consume()
        bucket.consume()
        first = bucket.get_backoff_delay()
        bucket.consume()
        assert bucket.get_backoff_delay() > first


class TestSubmissionPacer:

    def test_first_submission_not_delayed(self):
        clock = FakeClock()
        pacer = SubmissionPacer(2.0, clock=clock, sleep=clock.sleep)
        assert pacer.wait() == 0.0
        assert clock.sleeps == []

    def test_enforces_minimum_interval(self):
        clock = FakeClock()
        pacer = SubmissionPacer(2.0, clock=clock, sleep=clock.sleep)
        pacer.wait()
        clock.now += 0.5
        waited = pacer.wait()
        assert waited == pytest.approx(1.5)
        assert clock.sleeps == [pytest.approx(1.5)]

    def test_no_wait_after_interval_elapsed(self):
        clock = FakeClock()
        pacer = SubmissionPacer(2.0, clock=clock, sleep=clock.sleep)
        pacer.wait()
        clock.now += 5.0
        assert pacer.wait() == 0.0

    def test_draws_from_bucket(self):
        clock = FakeClock()
        bucket = TokenBucket(capacity=1, refill_rate=1.0, clock=clock)
        pacer = SubmissionPacer(0.1, bucket=bucket, clock=clock, sleep=clock.sleep)
        pacer.wait()
        pacer.wait()
        # second wait had to sleep for the bucket to refill
        assert pacer.total_waited >= 0.9


class TestExponentialBackoff:

    def test_delays_double_and_cap(self):
        backoff = ExponentialBackoff(base_delay=1.0, multiplier=2.0, max_delay=3.0, jitter=0)
        assert [backoff.get_delay() for _ in range(4)] == [1.0, 2.0, 3.0, 3.0]
        backoff.reset()
        assert backoff.get_delay() == 1.0
