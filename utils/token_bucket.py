"""Token bucket throttle for outbound gateway calls."""
import time
import threading


class TokenBucket:
    """Thread-safe token bucket. Holds at most `burst` tokens, refilled at calls_per_minute."""

    def __init__(self, calls_per_minute, burst=None, clock=time.monotonic, sleep=time.sleep):
        if calls_per_minute <= 0:
            raise ValueError("calls_per_minute must be positive")
        self.rate = calls_per_minute / 60.0
        self.capacity = float(burst if burst is not None else calls_per_minute)
        self._tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._stamp = clock()
        self._lock = threading.Lock()

    def _refill(self):
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._stamp) * self.rate)
        self._stamp = now

    def wait(self) -> float:
        """Block until a token is available. Returns the seconds spent waiting."""
        with self._lock:
            self._refill()
            self._tokens -= 1
            deficit = -self._tokens
        # a negative balance reserves the token; sleep it off outside the lock
        if deficit <= 0:
            return 0.0
        delay = deficit / self.rate
        self._sleep(delay)
        return delay
