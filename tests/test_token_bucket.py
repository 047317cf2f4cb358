"""Tests for the outbound token-bucket throttle."""
import pytest

from utils.token_bucket import TokenBucket


class StepClock:
    def __init__(self):
        self.now = 0.0
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


def _bucket(clock, per_minute=60, burst=1):
    return TokenBucket(per_minute, burst=burst, clock=clock, sleep=clock.sleep)


def test_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        TokenBucket(0)


def test_burst_passes_without_sleeping():
    clock = StepClock()
    bucket = _bucket(clock, burst=2)
    assert bucket.wait() == 0.0
    assert bucket.wait() == 0.0
    assert clock.slept == []


def test_wait_sleeps_for_deficit():
    clock = StepClock()
    bucket = _bucket(clock)
    assert bucket.wait() == 0.0
    assert bucket.wait() == pytest.approx(1.0)
    assert clock.slept == [pytest.approx(1.0)]


def test_refills_over_time():
    clock = StepClock()
    bucket = _bucket(clock)
    bucket.wait()
    clock.now += 1.0
    assert bucket.wait() == 0.0


def test_refill_capped_at_capacity():
    clock = StepClock()
    bucket = _bucket(clock)
    clock.now += 100
    assert bucket.wait() == 0.0
    assert bucket.wait() == pytest.approx(1.0)
