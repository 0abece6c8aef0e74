# src/bullion/shared/rate_limiter.py
"""
Rate Limiter - Upstream Request Budget

The upstream price APIs are rate-limited. This module implements a sliding
window limiter that price sources consult before every HTTP call, so the
engine stays under the provider's budget even when refreshes are triggered
more often than planned. A denied call is treated like any other upstream
failure (the cache serves its fallback).

Files that USE this module:
- bullion.adapters.providers.* (every PriceSource checks its budget)
- bullion.adapters.crawlers.base (crawlers share the same budget mechanism)

Files that this module USES:
- None (pure utility implementation)
"""
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for rate limiting."""
    max_requests: int
    time_window: float  # in seconds


class RateLimiter:
    """Thread-safe in-memory sliding window rate limiter."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)

    def _trim(self, identifier: str, now: float, config: RateLimitConfig) -> Deque[float]:
        cutoff = now - config.time_window
        requests = self._requests[identifier]
        while requests and requests[0] <= cutoff:
            requests.popleft()
        return requests

    def is_allowed(self, identifier: str, config: RateLimitConfig) -> bool:
        """
        Check and record a request for the given identifier.

        Args:
            identifier: Unique identifier (e.g., the price source name)
            config: Rate limit configuration

        Returns:
            True if the request is allowed, False if the budget is exhausted
        """
        with self._lock:
            now = self._clock()
            requests = self._trim(identifier, now, config)
            if len(requests) >= config.max_requests:
                return False

            requests.append(now)
            return True

    def get_retry_after(self, identifier: str, config: RateLimitConfig) -> float:
        """
        Seconds until the window frees up a slot for an identifier.

        Returns:
            0.0 when a request would be allowed now
        """
        with self._lock:
            now = self._clock()
            requests = self._trim(identifier, now, config)
            if len(requests) < config.max_requests:
                return 0.0
            return max(0.0, requests[0] + config.time_window - now)


def per_minute(max_requests: int) -> RateLimitConfig:
    return RateLimitConfig(max_requests=max_requests, time_window=60.0)


# Process-wide limiter shared by all upstream sources
upstream_limiter = RateLimiter()
