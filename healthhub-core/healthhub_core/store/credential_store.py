"""
Credential Store
================
Boundary to the user directory. Only per-record atomicity is assumed: the
failure counter is incremented and the lock expiry set in one indivisible
operation, never through a read in the application followed by a write.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Tuple

import structlog

from ..redis_scripts import CachedScript
from ..timeouts import call_with_timeout
from .models import Account, normalize_identity

logger = structlog.get_logger(__name__)

# Lua script: increment the failure counter and set the lock expiry when the
# threshold is reached, atomically on a single account hash.
INCREMENT_FAILURE_SCRIPT = """
local key = KEYS[1]
local max_attempts = tonumber(ARGV[1])
local lock_seconds = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

if redis.call('EXISTS', key) == 0 then
    return {-1, 0}
end

local count = redis.call('HINCRBY', key, 'failed_attempts', 1)
local lock_until = 0

if count >= max_attempts then
    lock_until = now + lock_seconds
    redis.call('HSET', key, 'lock_expires_at', lock_until)
end

return {count, lock_until}
"""


class CredentialStore(ABC):
    """Directory operations used by the auth core."""

    @abstractmethod
    async def find_by_identity(self, identity: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def update_failure_state(
        self,
        identity: str,
        count: int,
        lock_expires_at: Optional[datetime] = None,
    ) -> None:
        ...

    @abstractmethod
    async def reset_failure_state(self, identity: str) -> None:
        ...

    @abstractmethod
    async def increment_failure_state(
        self,
        identity: str,
        max_attempts: int,
        lock_duration_seconds: int,
        now: datetime,
    ) -> Tuple[int, Optional[datetime]]:
        """
        Atomically add one failed attempt.

        Returns:
            Tuple of (new_count, lock_expires_at or None if not locked by
            this increment)
        """

    @abstractmethod
    async def update_credential_hash(self, identity: str, credential_hash: str) -> None:
        ...


class InMemoryCredentialStore(CredentialStore):
    """
    Dictionary-backed directory for development and testing.

    Use RedisCredentialStore (or the real directory adapter) in production.
    """

    def __init__(self, accounts: Optional[Iterable[Account]] = None):
        self._accounts: Dict[str, Account] = {}
        self._lock = asyncio.Lock()
        for account in accounts or ():
            self.add_account(account)

    def add_account(self, account: Account) -> None:
        account.identity = normalize_identity(account.identity)
        self._accounts[account.identity] = account

    async def find_by_identity(self, identity: str) -> Optional[Account]:
        account = self._accounts.get(normalize_identity(identity))
        # Callers get a snapshot, like a row read from the directory
        return replace(account, permissions=list(account.permissions)) if account else None

    async def update_failure_state(
        self,
        identity: str,
        count: int,
        lock_expires_at: Optional[datetime] = None,
    ) -> None:
        async with self._lock:
            account = self._accounts.get(normalize_identity(identity))
            if account is None:
                return
            account.failed_attempts = count
            account.lock_expires_at = lock_expires_at

    async def reset_failure_state(self, identity: str) -> None:
        await self.update_failure_state(identity, 0, None)

    async def increment_failure_state(
        self,
        identity: str,
        max_attempts: int,
        lock_duration_seconds: int,
        now: datetime,
    ) -> Tuple[int, Optional[datetime]]:
        async with self._lock:
            account = self._accounts.get(normalize_identity(identity))
            if account is None:
                return 0, None
            account.failed_attempts += 1
            lock_until = None
            if account.failed_attempts >= max_attempts:
                lock_until = now + timedelta(seconds=lock_duration_seconds)
                account.lock_expires_at = lock_until
            return account.failed_attempts, lock_until

    async def update_credential_hash(self, identity: str, credential_hash: str) -> None:
        async with self._lock:
            account = self._accounts.get(normalize_identity(identity))
            if account is not None:
                account.credential_hash = credential_hash


class RedisCredentialStore(CredentialStore):
    """
    Redis-backed directory adapter.

    Accounts live in hashes at ``account:{identity}``. Lock expiry is stored
    as a unix timestamp (0 or missing means unlocked).
    """

    def __init__(self, redis_client, timeout: float = 2.0, prefix: str = "account"):
        """
        Args:
            redis_client: Async Redis client
            timeout: Per-call timeout in seconds
            prefix: Key prefix for account hashes
        """
        self.redis = redis_client
        self.timeout = timeout
        self.prefix = prefix
        self._increment = CachedScript(
            redis_client, INCREMENT_FAILURE_SCRIPT, timeout, "credential_store"
        )

    def _key(self, identity: str) -> str:
        return f"{self.prefix}:{normalize_identity(identity)}"

    async def put_account(self, account: Account) -> None:
        """Write a full account record (provisioning and tests)."""
        mapping = {
            "credential_hash": account.credential_hash,
            "role": account.role,
            "permissions": json.dumps(account.permissions),
            "failed_attempts": account.failed_attempts,
            "lock_expires_at": (
                int(account.lock_expires_at.timestamp()) if account.lock_expires_at else 0
            ),
            "mfa_enabled": int(account.mfa_enabled),
            "mfa_channel": account.mfa_channel or "",
        }
        await call_with_timeout(
            self.redis.hset(self._key(account.identity), mapping=mapping),
            self.timeout,
            "credential_store",
        )

    async def find_by_identity(self, identity: str) -> Optional[Account]:
        raw = await call_with_timeout(
            self.redis.hgetall(self._key(identity)),
            self.timeout,
            "credential_store",
        )
        if not raw:
            return None

        data = {
            k.decode("utf-8") if isinstance(k, bytes) else k:
            v.decode("utf-8") if isinstance(v, bytes) else v
            for k, v in raw.items()
        }
        lock_ts = int(float(data.get("lock_expires_at") or 0))
        return Account(
            identity=normalize_identity(identity),
            credential_hash=data.get("credential_hash", ""),
            role=data.get("role", ""),
            permissions=json.loads(data.get("permissions") or "[]"),
            failed_attempts=int(data.get("failed_attempts") or 0),
            lock_expires_at=(
                datetime.fromtimestamp(lock_ts, tz=timezone.utc) if lock_ts else None
            ),
            mfa_enabled=data.get("mfa_enabled") in ("1", "true"),
            mfa_channel=data.get("mfa_channel") or None,
        )

    async def update_failure_state(
        self,
        identity: str,
        count: int,
        lock_expires_at: Optional[datetime] = None,
    ) -> None:
        await call_with_timeout(
            self.redis.hset(
                self._key(identity),
                mapping={
                    "failed_attempts": count,
                    "lock_expires_at": (
                        int(lock_expires_at.timestamp()) if lock_expires_at else 0
                    ),
                },
            ),
            self.timeout,
            "credential_store",
        )

    async def reset_failure_state(self, identity: str) -> None:
        await self.update_failure_state(identity, 0, None)

    async def increment_failure_state(
        self,
        identity: str,
        max_attempts: int,
        lock_duration_seconds: int,
        now: datetime,
    ) -> Tuple[int, Optional[datetime]]:
        count, lock_until = await self._increment(
            [self._key(identity)],
            [max_attempts, lock_duration_seconds, int(now.timestamp())],
        )
        count, lock_until = int(count), int(lock_until)
        if count < 0:
            return 0, None
        return count, (
            datetime.fromtimestamp(lock_until, tz=timezone.utc) if lock_until else None
        )

    async def update_credential_hash(self, identity: str, credential_hash: str) -> None:
        await call_with_timeout(
            self.redis.hset(self._key(identity), "credential_hash", credential_hash),
            self.timeout,
            "credential_store",
        )
