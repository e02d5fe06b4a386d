"""Best-effort, in-process fixed-window rate limiter keyed by caller identity."""
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from fastapi import Request


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0  # whole seconds until the window resets


class RateLimiter:
    """N requests per window per identity. State is lost on restart."""

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}  # identity -> (window_start, count)
        self._lock = Lock()

    def allow(self, identity: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            window_start, count = self._windows.get(identity, (now, 0))
            count += 1
            self._windows[identity] = (window_start, count)
        if count > self.max_requests:
            reset_in = self.window_seconds - (now - window_start)
            return RateLimitDecision(allowed=False, remaining=0, retry_after=max(1, int(reset_in + 0.999)))
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count)

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
