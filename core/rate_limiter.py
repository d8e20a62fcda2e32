import time
from typing import List
from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)


class RateLimiter:
    """
    Sliding-window request pacing shared by the repository and index clients.

    A `max_requests` of 0 disables pacing entirely.
    """

    def __init__(self, max_requests: int = 600, window_seconds: int = 60):
        self.max_requests = max_requests if isinstance(max_requests, int) else 600
        self.window_seconds = window_seconds if isinstance(window_seconds, int) else 60
        self.requests: List[float] = []

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    def is_allowed(self) -> bool:
        if not self.enabled:
            return True

        now = time.time()
        self.requests = [
            req_time
            for req_time in self.requests
            if now - req_time < self.window_seconds
        ]

        if len(self.requests) < self.max_requests:
            self.requests.append(now)
            return True
        return False

    def wait_time(self) -> float:
        if not self.requests:
            return 0
        return max(0, self.window_seconds - (time.time() - self.requests[0]))

    def wait_if_needed(self) -> None:
        while not self.is_allowed():
            wait = self.wait_time()
            logger.debug("Rate limit reached. Waiting %.2f seconds...", wait)
            time.sleep(wait)
