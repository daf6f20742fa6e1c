"""
In-memory rate limiting for public write endpoints (checkout).

Sliding-window counter per (client IP, route). This is the only
process-wide mutable state in the API; with several workers each one
counts separately.
"""
import time
import logging
from collections import defaultdict
from typing import Callable, Optional

from fastapi import Request

from config import settings
from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter keyed by an arbitrary string."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._requests: dict[str, list[float]] = defaultdict(list)

    def _cleanup(self, key: str, window_seconds: int) -> None:
        cutoff = self._clock() - window_seconds
        kept = [ts for ts in self._requests[key] if ts > cutoff]
        if kept:
            self._requests[key] = kept
        else:
            self._requests.pop(key, None)

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Record a hit and return True, or return False when the window is full."""
        self._cleanup(key, window_seconds)
        hits = self._requests[key]
        if len(hits) >= max_requests:
            return False
        hits.append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests.get(key, [])))

    def retry_after(self, key: str, window_seconds: int) -> int:
        """Seconds until the oldest hit in the window expires."""
        hits = self._requests.get(key)
        if not hits:
            return 0
        return max(1, int(hits[0] + window_seconds - self._clock()) + 1)

    def reset(self) -> None:
        self._requests.clear()


_limiter = RateLimiter()


def get_limiter() -> RateLimiter:
    return _limiter


def rate_limit(max_requests: Optional[int] = None, window_seconds: Optional[int] = None):
    """
    FastAPI dependency factory.

        @router.post("/checkout", dependencies=[Depends(rate_limit())])

    Defaults come from CHECKOUT_RATE_LIMIT / CHECKOUT_RATE_WINDOW_SECONDS.
    """
    async def _check_rate_limit(request: Request):
        limit = max_requests or settings.checkout_rate_limit
        window = window_seconds or settings.checkout_rate_window_seconds
        client_ip = request.client.host if request.client else "unknown"
        route_path = request.url.path
        key = f"{client_ip}:{route_path}"

        if not _limiter.check(key, limit, window):
            retry_after = _limiter.retry_after(key, window)
            logger.warning(f"Rate limit exceeded: {client_ip} on {route_path} ({limit}/{window}s)")
            error = RateLimitError(
                f"Too many requests. Maximum {limit} per {window} seconds.",
                details={"limit": limit, "windowSeconds": window, "retryAfter": retry_after},
            )
            error.headers = {
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            }
            raise error

    return _check_rate_limit
