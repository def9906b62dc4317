"""
Async Password Hashing
======================
Hashing and verification run in the default thread pool so a login never
blocks the event loop for the duration of an Argon2 computation.
"""

import asyncio
from typing import Callable, Optional, Tuple

import bcrypt
from argon2.exceptions import InvalidHashError, VerificationError

from .hasher import BCRYPT_PREFIXES, get_cached_hasher, get_dummy_hash, needs_rehash


def _check_argon2(secret: str, credential_hash: str) -> bool:
    try:
        return get_cached_hasher().verify(credential_hash, secret)
    except (VerificationError, InvalidHashError):
        return False


def _check_bcrypt(secret: str, credential_hash: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), credential_hash.encode("utf-8"))
    except ValueError:
        return False


def _checker_for(credential_hash: str) -> Optional[Callable[[str, str], bool]]:
    if credential_hash.startswith("$argon2"):
        return _check_argon2
    if credential_hash.startswith(BCRYPT_PREFIXES):
        return _check_bcrypt
    return None


async def _in_thread(func, *args):
    return await asyncio.get_running_loop().run_in_executor(None, func, *args)


async def hash_password(password: str) -> str:
    """Hash ``password`` with the configured Argon2id parameters."""
    if not password:
        raise ValueError("Password cannot be empty")
    return await _in_thread(get_cached_hasher().hash, password)


async def burn_verification(password: str) -> None:
    """
    Spend the cost of one verification against the dummy hash.

    Used for unknown identities so response time does not reveal whether
    an account exists.
    """
    await _in_thread(_check_argon2, password or "-", get_dummy_hash())


async def verify_password(password: str, hash: str) -> bool:
    """
    Check ``password`` against an Argon2id or legacy bcrypt hash.

    Every call spends one full verification: an empty password is still
    checked, and an unrecognised hash format is replaced by the dummy hash.
    Neither ever matches.
    """
    checker = _checker_for(hash or "")
    if checker is None:
        await burn_verification(password)
        return False
    matched = await _in_thread(checker, password or "", hash)
    return matched and bool(password)


async def verify_and_upgrade(password: str, hash: str) -> Tuple[bool, Optional[str]]:
    """
    Verify ``password`` and produce a replacement hash when the stored one
    is bcrypt or uses outdated Argon2 parameters.

    Returns:
        Tuple of (is_valid, new_hash_or_none)
    """
    if not await verify_password(password, hash):
        return False, None
    if needs_rehash(hash):
        return True, await hash_password(password)
    return True, None
