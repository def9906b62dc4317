"""
Rate Limit Models
=================
Outcome of counting one attempt against a keyed window.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RateLimitResult(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"


class KeyType(str, Enum):
    """Keyspaces checked on every login."""
    IDENTITY = "identity"
    ORIGIN = "origin"


@dataclass(frozen=True)
class RateLimitInfo:
    """
    State of one key's window after an attempt was offered to it.

    ``attempts`` is the number of counted attempts in the window; a blocked
    attempt is not counted, so it stays at ``limit``.
    """
    allowed: bool
    attempts: int
    limit: int
    window_ends_at: int  # unix seconds
    retry_after: Optional[int] = None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.attempts)

    @property
    def result(self) -> RateLimitResult:
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED
