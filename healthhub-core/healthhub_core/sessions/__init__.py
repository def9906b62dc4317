"""
Sessions
========
Bearer tokens backed by a revocable session registry.
"""

from .models import SessionRecord, SessionClaims, IssuedSession
from .tokens import BearerTokenCodec
from .store import SessionStore, InMemorySessionStore, RedisSessionStore
from .manager import SessionManager

__all__ = [
    "SessionRecord",
    "SessionClaims",
    "IssuedSession",
    "BearerTokenCodec",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "SessionManager",
]
