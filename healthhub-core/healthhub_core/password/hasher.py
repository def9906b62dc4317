"""
Password Hasher
===============
Argon2id password hasher configuration and initialization.
"""

import secrets
from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError

_hasher: Optional[PasswordHasher] = None
_dummy_hash: Optional[str] = None


def _build_hasher() -> PasswordHasher:
    """Get the Argon2id password hasher with production-ready settings."""
    # Production settings (~300ms hashing time on typical server)
    return PasswordHasher(
        time_cost=3,        # Number of iterations
        memory_cost=65536,  # 64MB memory (64 * 1024 KB)
        parallelism=4,      # 4 parallel threads
        hash_len=32,        # 32-byte hash output
        salt_len=16,        # 16-byte salt
        type=Type.ID,       # Argon2id variant (best for passwords)
    )


def get_cached_hasher() -> PasswordHasher:
    """Get cached hasher instance."""
    global _hasher
    if _hasher is None:
        _hasher = _build_hasher()
    return _hasher


def use_hasher(hasher: PasswordHasher) -> None:
    """Replace the process-wide hasher (cheaper parameters in tests)."""
    global _hasher, _dummy_hash
    _hasher = hasher
    _dummy_hash = None


def get_dummy_hash() -> str:
    """
    Hash of a random secret nobody knows, with the current parameters.

    Verified against when an identity is unknown so the response takes as
    long as a real verification.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = get_cached_hasher().hash(secrets.token_urlsafe(32))
    return _dummy_hash


BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password_sync(password: str) -> str:
    """Blocking hash for provisioning scripts and fixtures."""
    if not password:
        raise ValueError("Password cannot be empty")
    return get_cached_hasher().hash(password)


def needs_rehash(credential_hash: str) -> bool:
    """True for bcrypt hashes and Argon2 hashes with outdated parameters."""
    if not credential_hash or not credential_hash.startswith("$argon2"):
        return True
    try:
        return get_cached_hasher().check_needs_rehash(credential_hash)
    except InvalidHashError:
        return True
