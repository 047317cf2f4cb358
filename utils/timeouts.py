"""Bounded-time calls for external I/O."""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

logger = logging.getLogger("petalerts.timeouts")


def call_with_timeout(fn, timeout, *args, **kwargs):
    """Run fn(*args, **kwargs), raising TimeoutError if it exceeds timeout seconds.

    A timeout of None or 0 calls fn inline. The worker thread of a timed-out
    call is abandoned, not killed.
    """
    if not timeout:
        return fn(*args, **kwargs)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bounded-call")
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        name = getattr(fn, "__qualname__", repr(fn))
        logger.warning(f"{name} timed out after {timeout}s")
        raise TimeoutError(f"{name} timed out after {timeout}s") from None
    finally:
        executor.shutdown(wait=False)
