# app/lib/rate_limit.py
from __future__ import annotations

from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from app.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # epoch seconds when the oldest counted request leaves the window

    def headers(self) -> dict:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class UserRateLimiter:
    """
    Sliding-window limit on generation requests per user, counted in this
    process. A limit of 0 disables it. Storage errors let the request through.
    """

    namespace = "story-generation"

    def __init__(self, requests: int, window_s: int):
        self.requests = requests
        self.window_s = window_s
        self.item = RateLimitItemPerSecond(max(requests, 1), max(window_s, 1))
        self.storage = MemoryStorage()
        self.strategy = MovingWindowRateLimiter(self.storage)

    def check(self, user_id: str) -> RateDecision:
        if self.requests <= 0:
            return RateDecision(True, 0, 0, 0)
        try:
            allowed = self.strategy.hit(self.item, self.namespace, user_id)
            stats = self.strategy.get_window_stats(self.item, self.namespace, user_id)
        except Exception as e:
            log.error(f"rate limit check failed for user {user_id}; allowing request: {e}")
            return RateDecision(True, self.requests, self.requests, 0)
        if not allowed:
            log.info(f"rate limit exceeded for user {user_id} ({self.requests}/{self.window_s}s)")
        return RateDecision(allowed, self.requests, stats.remaining, int(stats.reset_time))

    def reset(self) -> None:
        self.storage.reset()
