"""
Account Lockout
===============
Per-account state machine: ``unlocked`` -> ``locked`` when consecutive
failures reach the maximum, ``locked`` -> ``unlocked`` implicitly once the
lock expiry has passed.

State lives on the account record and only changes through single-record
atomic store operations. Every transition is recorded in the audit trail.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

import structlog

from .audit import AuditAction, AuditEventType, AuditLogger
from .clock import Clock, utcnow
from .errors import AccountLocked
from .store import Account, CredentialStore, LockState
from .timeouts import call_with_timeout

logger = structlog.get_logger(__name__)


@dataclass
class LockoutStatus:
    """Lockout state after a failed attempt was counted."""
    state: LockState
    failed_attempts: int
    locked_until: Optional[datetime] = None

    @property
    def locked(self) -> bool:
        return self.state == LockState.LOCKED


class LockoutManager:
    """Tracks failed attempts and lock expiry per account."""

    def __init__(
        self,
        store: CredentialStore,
        audit: AuditLogger,
        max_attempts: int = 5,
        lock_duration_seconds: int = 1800,
        timeout: float = 2.0,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.audit = audit
        self.max_attempts = max_attempts
        self.lock_duration_seconds = lock_duration_seconds
        self.timeout = timeout
        self.clock = clock or utcnow

    async def ensure_unlocked(
        self,
        account: Account,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Account:
        """
        Reject attempts against a locked account; clear an expired lock.

        Returns:
            The account, with its failure state reset if a lock had expired

        Raises:
            AccountLocked: if the lock is still active
            StoreUnavailable: if the reset cannot be written
        """
        if account.lock_expires_at is None:
            return account

        now = self.clock()
        if account.lock_state(now) == LockState.LOCKED:
            logger.warning("login_against_locked_account", locked_until=account.lock_expires_at.isoformat())
            await self.audit.record(
                AuditEventType.AUTHENTICATION,
                AuditAction.AUTH_ACCOUNT_LOCKED,
                identity=account.identity,
                success=False,
                origin=origin,
                user_agent=user_agent,
                metadata={
                    "locked": True,
                    "locked_until": account.lock_expires_at.isoformat(),
                    "failed_attempts": account.failed_attempts,
                },
            )
            raise AccountLocked(account.lock_expires_at)

        # Lock expired: implicit unlock before the attempt proceeds
        await call_with_timeout(
            self.store.reset_failure_state(account.identity),
            self.timeout,
            "credential_store",
        )
        logger.info("account_lock_expired")
        await self.audit.record(
            AuditEventType.AUTHENTICATION,
            AuditAction.AUTH_ACCOUNT_UNLOCKED,
            identity=account.identity,
            success=True,
            origin=origin,
            user_agent=user_agent,
            metadata={"locked": False, "reason": "lock_expired"},
        )
        return replace(account, failed_attempts=0, lock_expires_at=None)

    async def record_failure(
        self,
        identity: str,
        account: Optional[Account],
        reason: str,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LockoutStatus:
        """
        Count a failed verification and audit it.

        Unknown identities are audited but have no record to update.

        Raises:
            StoreUnavailable: if the counter cannot be updated
        """
        if account is None:
            status = LockoutStatus(LockState.UNLOCKED, failed_attempts=0)
        else:
            count, locked_until = await call_with_timeout(
                self.store.increment_failure_state(
                    account.identity,
                    self.max_attempts,
                    self.lock_duration_seconds,
                    self.clock(),
                ),
                self.timeout,
                "credential_store",
            )
            status = LockoutStatus(
                LockState.LOCKED if locked_until else LockState.UNLOCKED,
                failed_attempts=count,
                locked_until=locked_until,
            )
            if status.locked:
                logger.warning(
                    "account_locked",
                    failed_attempts=count,
                    locked_until=locked_until.isoformat(),
                )

        metadata = {
            "locked": status.locked,
            "failed_attempts": status.failed_attempts,
            "reason": reason,
        }
        if status.locked_until:
            metadata["locked_until"] = status.locked_until.isoformat()

        await self.audit.record(
            AuditEventType.AUTHENTICATION,
            AuditAction.AUTH_FAILED_LOGIN,
            identity=identity,
            success=False,
            origin=origin,
            user_agent=user_agent,
            metadata=metadata,
        )
        return status

    async def record_success(self, account: Account) -> None:
        """
        Reset the failure counter after a successful verification.

        Raises:
            StoreUnavailable: if the reset cannot be written
        """
        if account.failed_attempts == 0 and account.lock_expires_at is None:
            return
        await call_with_timeout(
            self.store.reset_failure_state(account.identity),
            self.timeout,
            "credential_store",
        )
