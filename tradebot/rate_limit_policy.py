"""Client-side rate limiting: sliding-window quotas per exchange endpoint."""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional


ORDER_PATH = "/api/v3/order"


@dataclass
class RateLimitQuota:
    """Per-endpoint rate-limit quota."""
    requests_per_window: int
    window_seconds: float


@dataclass
class RateLimitState:
    """Request history for a single endpoint."""
    quota: RateLimitQuota
    request_times: List[float] = field(default_factory=list)

    def _prune(self, now: float) -> None:
        cutoff = now - self.quota.window_seconds
        self.request_times = [t for t in self.request_times if t > cutoff]

    def is_allowed(self) -> bool:
        self._prune(time.monotonic())
        return len(self.request_times) < self.quota.requests_per_window

    def record_request(self) -> None:
        self.request_times.append(time.monotonic())

    def time_until_allowed(self) -> float:
        """Seconds until the oldest request in the window expires. 0 if allowed now."""
        now = time.monotonic()
        self._prune(now)
        if len(self.request_times) < self.quota.requests_per_window:
            return 0.0
        return max(0.0, self.request_times[0] + self.quota.window_seconds - now)


class RateLimitManager:
    """Enforce quotas per endpoint path.

    Order endpoints get their own (tighter) budget; every other path shares the
    ``default`` quota individually.
    """

    DEFAULT_QUOTAS = {
        ORDER_PATH: RateLimitQuota(requests_per_window=10, window_seconds=1),
        "default": RateLimitQuota(requests_per_window=20, window_seconds=1),
    }

    def __init__(self, quotas: Optional[Dict[str, RateLimitQuota]] = None):
        self.quotas = dict(self.DEFAULT_QUOTAS)
        if quotas:
            self.quotas.update(quotas)
        self.states: Dict[str, RateLimitState] = {}

    @classmethod
    def from_config(cls, config) -> "RateLimitManager":
        """Build from a ``RateLimitConfig``."""
        return cls({
            ORDER_PATH: RateLimitQuota(config.orders_per_second, 1),
            "default": RateLimitQuota(config.default_per_second, 1),
        })

    def _get_state(self, endpoint: str) -> RateLimitState:
        if endpoint not in self.states:
            quota = self.quotas.get(endpoint, self.quotas["default"])
            self.states[endpoint] = RateLimitState(quota=quota)
        return self.states[endpoint]

    def is_allowed(self, endpoint: str) -> bool:
        return self._get_state(endpoint).is_allowed()

    def record_request(self, endpoint: str) -> None:
        self._get_state(endpoint).record_request()

    def time_until_allowed(self, endpoint: str) -> float:
        return self._get_state(endpoint).time_until_allowed()

    def wait_if_needed(self, endpoint: str, max_wait: float = 60.0) -> bool:
        """Block until a request is allowed, then record it.

        Returns:
            True if the request may proceed, False if ``max_wait`` would be exceeded
        """
        start = time.monotonic()
        while True:
            wait_time = self.time_until_allowed(endpoint)
            if wait_time <= 0:
                self.record_request(endpoint)
                return True
            if time.monotonic() - start + wait_time > max_wait:
                return False
            time.sleep(wait_time)

    async def async_wait_if_needed(self, endpoint: str, max_wait: float = 60.0) -> bool:
        """Non-blocking variant of :meth:`wait_if_needed`."""
        start = time.monotonic()
        while True:
            wait_time = self.time_until_allowed(endpoint)
            if wait_time <= 0:
                self.record_request(endpoint)
                return True
            if time.monotonic() - start + wait_time > max_wait:
                return False
            await asyncio.sleep(wait_time)
