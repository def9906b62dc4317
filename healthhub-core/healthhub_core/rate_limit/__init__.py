"""
Rate Limiting Module
====================
Fixed window attempt counters (in-memory and Redis) and the login limiter
that applies them per identity and per network origin.
"""

# Re-export all public APIs
from .models import RateLimitResult, RateLimitInfo, KeyType
from .in_memory import InMemoryAttemptLimiter
from .redis_limiter import RedisAttemptLimiter, ATTEMPT_WINDOW_SCRIPT
from .login import LoginRateLimiter, AttemptLimiter

__all__ = [
    # Models
    "RateLimitResult",
    "RateLimitInfo",
    "KeyType",
    # Limiters
    "InMemoryAttemptLimiter",
    "RedisAttemptLimiter",
    "LoginRateLimiter",
    "AttemptLimiter",
    # Scripts
    "ATTEMPT_WINDOW_SCRIPT",
]
