"""Per-tenant sliding window rate limiting for generator calls."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Protocol

from rfprag.metrics.observability import get_logger


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_in_ms: int


@dataclass(frozen=True)
class BatchAllowance:
    allowed: bool
    allowed_count: int
    remaining: int


class RateLimiter(Protocol):
    def check(self, tenant_id: str, endpoint: str = "generate") -> RateLimitDecision:
        """Consume one slot if available."""

    def consume_batch(self, tenant_id: str, count: int) -> BatchAllowance:
        """Consume up to ``count`` slots; ``allowed_count`` never exceeds ``count``."""


class SlidingWindowRateLimiter:
    """In-process limiter: ``max_requests + burst`` calls per window per tenant."""

    def __init__(
        self,
        max_requests: int = 20,
        *,
        burst: int = 5,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capacity = max_requests + burst
        self._window = window_seconds
        self._clock = clock
        self._buckets: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("rate_limit")

    def check(self, tenant_id: str, endpoint: str = "generate") -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            bucket = self._prune(tenant_id, now)
            remaining = self._capacity - len(bucket)
            allowed = remaining > 0
            if allowed:
                bucket.append(now)
            oldest = bucket[0] if bucket else now
            reset_in_ms = max(0, int((oldest + self._window - now) * 1000))
        if not allowed:
            self._logger.warning("rate_limit.exceeded", tenant_id=tenant_id, endpoint=endpoint)
        return RateLimitDecision(allowed=allowed, remaining=max(0, remaining - 1), reset_in_ms=reset_in_ms)

    def consume_batch(self, tenant_id: str, count: int) -> BatchAllowance:
        with self._lock:
            now = self._clock()
            bucket = self._prune(tenant_id, now)
            available = max(0, self._capacity - len(bucket))
            allowed_count = max(0, min(count, available))
            bucket.extend([now] * allowed_count)
        if allowed_count < count:
            self._logger.warning(
                "rate_limit.batch_limited",
                tenant_id=tenant_id,
                requested=count,
                allowed=allowed_count,
            )
        return BatchAllowance(
            allowed=allowed_count > 0,
            allowed_count=allowed_count,
            remaining=available - allowed_count,
        )

    def _prune(self, tenant_id: str, now: float) -> List[float]:
        bucket = self._buckets.setdefault(tenant_id, [])
        cutoff = now - self._window
        while bucket and bucket[0] <= cutoff:
            bucket.pop(0)
        return bucket
