"""
Password Hashing
================
Argon2id credential hashes for the directory, with verification of legacy
bcrypt hashes so they can be replaced on the next successful login.
"""

from .hasher import (
    get_cached_hasher,
    get_dummy_hash,
    use_hasher,
    hash_password_sync,
    needs_rehash,
)
from .async_ops import hash_password, verify_password, verify_and_upgrade, burn_verification

__all__ = [
    # Hasher
    "get_cached_hasher",
    "get_dummy_hash",
    "use_hasher",
    "hash_password_sync",
    "needs_rehash",
    # Async Operations
    "hash_password",
    "verify_password",
    "verify_and_upgrade",
    "burn_verification",
]
