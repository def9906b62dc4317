"""
Credential Store Boundary
=========================
Account records owned by the external user directory. The core reads them
and performs single-record atomic updates of the lockout fields.
"""

from .models import Account, LockState
from .credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    RedisCredentialStore,
    INCREMENT_FAILURE_SCRIPT,
)

__all__ = [
    "Account",
    "LockState",
    "CredentialStore",
    "InMemoryCredentialStore",
    "RedisCredentialStore",
    "INCREMENT_FAILURE_SCRIPT",
]
