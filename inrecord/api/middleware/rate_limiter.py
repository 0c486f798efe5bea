"""Rate limiting for write endpoints."""

import os
import time
from collections import defaultdict

from fastapi import HTTPException, Request, status


class RateLimiter:
    """Simple in-memory rate limiter.

    Token bucket per client; each bucket refills at ``requests_per_minute``
    and holds at most ``burst_size`` tokens.
    """

    def __init__(
        self,
        requests_per_minute: int = 30,
        burst_size: int = 10,
        cleanup_interval: int = 60,
    ):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Sustained requests per minute per client
            burst_size: Maximum burst requests allowed
            cleanup_interval: Interval (seconds) to cleanup old entries
        """
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.cleanup_interval = cleanup_interval

        # client_id -> (tokens, last_update, request_count)
        self.buckets: dict[str, tuple[float, float, int]] = defaultdict(
            lambda: (float(burst_size), time.time(), 0)
        )
        self.last_cleanup = time.time()

    def _refill_tokens(self, client_id: str) -> float:
        tokens, last_update, count = self.buckets[client_id]
        current_time = time.time()

        tokens_to_add = (current_time - last_update) * (self.requests_per_minute / 60.0)
        new_tokens = min(tokens + tokens_to_add, self.burst_size)

        self.buckets[client_id] = (new_tokens, current_time, count)
        return new_tokens

    @property
    def retry_after(self) -> int:
        return max(1, int(60 / self.requests_per_minute))

    async def check_rate_limit(self, client_id: str) -> None:
        """Consume one token for ``client_id``.

        Raises:
            HTTPException: 429 when the bucket is empty
        """
        current_time = time.time()
        if current_time - self.last_cleanup > self.cleanup_interval:
            self._cleanup_old_entries()
            self.last_cleanup = current_time

        tokens = self._refill_tokens(client_id)
        if tokens < 1.0:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "Rate limit exceeded",
                    "message": f"Maximum {self.requests_per_minute} requests per minute allowed",
                    "retry_after": self.retry_after,
                },
                headers={"Retry-After": str(self.retry_after)},
            )

        tokens, last_update, count = self.buckets[client_id]
        self.buckets[client_id] = (tokens - 1.0, last_update, count + 1)

    def _cleanup_old_entries(self) -> None:
        cutoff_time = time.time() - (self.cleanup_interval * 2)
        stale = [client_id for client_id, (_, last_update, _) in self.buckets.items() if last_update < cutoff_time]
        for client_id in stale:
            del self.buckets[client_id]

    def reset(self) -> None:
        self.buckets.clear()


rate_limiter = RateLimiter(requests_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "30")))


async def check_rate_limit(request: Request) -> None:
    """FastAPI dependency limiting requests per client IP.

    Example:
        @router.post("/api/bookings", dependencies=[Depends(check_rate_limit)])
    """
    client_id = request.client.host if request.client else "unknown"
    await rate_limiter.check_rate_limit(client_id)
