"""Sliding-log limiter for outgoing analysis calls."""

import time


class RateLimiter:
    """Allow at most ``max_requests`` calls in any trailing ``window_seconds``."""

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: list[float] = []

    def _prune(self) -> None:
        now = self._clock()
        self._requests = [t for t in self._requests if now - t < self.window_seconds]

    def can_make_request(self) -> bool:
        self._prune()
        return len(self._requests) < self.max_requests

    def record_request(self) -> None:
        self._requests.append(self._clock())

    @classmethod
    def from_config(cls) -> "RateLimiter":
        from reqforge.config import get_config

        config = get_config()
        return cls(
            max_requests=config.get("rate_limit_max_requests", 10),
            window_seconds=config.get("rate_limit_window_seconds", 60),
        )
