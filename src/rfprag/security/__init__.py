"""Input screening and rate limiting."""

from .guard import (
    GuardVerdict,
    InjectionGuard,
    PatternInjectionGuard,
    sanitize_for_prompt,
    wrap_user_content,
)
from .rate_limit import BatchAllowance, RateLimitDecision, RateLimiter, SlidingWindowRateLimiter

__all__ = [
    "BatchAllowance",
    "GuardVerdict",
    "InjectionGuard",
    "PatternInjectionGuard",
    "RateLimitDecision",
    "RateLimiter",
    "SlidingWindowRateLimiter",
    "sanitize_for_prompt",
    "wrap_user_content",
]
