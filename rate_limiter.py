"""Sliding-window rate limiter shared by every thread that talks to Trello."""

import logging
import threading
import time
from collections import deque
from typing import Deque

logger = logging.getLogger('trello_markdown_backup.rate_limiter')


class RateLimiter:
    """
    Allow at most N requests in any rolling one-second window.

    Each granted permit is handed back by a background thread exactly one
    period after it was granted, so the window slides with the requests rather
    than resetting on a fixed tick.

    Example:
        >>> with RateLimiter(10) as limiter:
        ...     limiter.acquire()  # blocks while 10 requests are in flight this second
    """

    def __init__(self, requests_per_second: int = 10, period_seconds: float = 1.0):
        """
        Start the limiter and its release thread.

        Args:
            requests_per_second: Permits per period. Values below 1 become 1
            period_seconds: Length of the rolling window
        """
        self.requests_per_second = max(1, int(requests_per_second))
        self.period_seconds = period_seconds

        self._permits = threading.Semaphore(self.requests_per_second)
        self._release_times: Deque[float] = deque()
        self._condition = threading.Condition()
        self._closed = False

        self._release_thread = threading.Thread(
            target=self._release_loop,
            name='rate-limiter-release',
            daemon=True
        )
        self._release_thread.start()
        logger.debug(f"Rate limiter started: {self.requests_per_second} requests per {period_seconds}s")

    def acquire(self) -> None:
        """Block until one more request fits in the window."""
        if self._closed:
            return

        self._permits.acquire()
        with self._condition:
            self._release_times.append(time.monotonic() + self.period_seconds)
            self._condition.notify()

    def _release_loop(self) -> None:
        with self._condition:
            while not self._closed:
                if not self._release_times:
                    self._condition.wait()
                    continue

                delay = self._release_times[0] - time.monotonic()
                if delay > 0:
                    self._condition.wait(delay)
                    continue

                # oldest grant first, queue is already in time order
                self._release_times.popleft()
                self._permits.release()

    def close(self) -> None:
        """Stop the release thread. Pending releases are dropped."""
        with self._condition:
            if self._closed:
                return
            self._closed = True
            self._release_times.clear()
            self._condition.notify_all()

        self._release_thread.join()
        # wake anyone still parked on the semaphore
        for _ in range(self.requests_per_second):
            self._permits.release()
        logger.debug("Rate limiter stopped")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> 'RateLimiter':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
