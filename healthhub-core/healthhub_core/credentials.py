"""
Credential Verification
=======================
Checks an identity/secret pair against the directory.

Unknown identities and wrong secrets take the same path through an Argon2
verification, so neither the response nor its timing tells them apart. The
outcome keeps the distinction for the audit trail only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from .errors import StoreUnavailable
from .password import burn_verification, verify_and_upgrade
from .store import Account, CredentialStore
from .store.models import normalize_identity
from .timeouts import call_with_timeout

logger = structlog.get_logger(__name__)


class VerificationReason(str, Enum):
    OK = "ok"
    UNKNOWN_IDENTITY = "unknown_identity"
    WRONG_SECRET = "wrong_secret"


@dataclass
class VerificationOutcome:
    """Result of a credential check. ``reason`` is for audit use only."""
    reason: VerificationReason
    account: Optional[Account] = None

    @property
    def verified(self) -> bool:
        return self.reason == VerificationReason.OK


class CredentialVerifier:
    """Verifies secrets and transparently upgrades legacy hashes."""

    def __init__(self, store: CredentialStore, timeout: float = 2.0):
        self.store = store
        self.timeout = timeout

    async def lookup(self, identity: str) -> Optional[Account]:
        return await call_with_timeout(
            self.store.find_by_identity(normalize_identity(identity)),
            self.timeout,
            "credential_store",
        )

    async def verify(self, identity: str, secret: str) -> VerificationOutcome:
        """Look up ``identity`` and verify ``secret`` against it."""
        return await self.verify_account(await self.lookup(identity), secret)

    async def verify_account(
        self,
        account: Optional[Account],
        secret: str,
    ) -> VerificationOutcome:
        """
        Verify ``secret`` against an already loaded account.

        Args:
            account: Directory record, or None when the identity is unknown
            secret: Plain text secret

        Returns:
            VerificationOutcome
        """
        if account is None:
            await burn_verification(secret)
            return VerificationOutcome(VerificationReason.UNKNOWN_IDENTITY)

        is_valid, new_hash = await verify_and_upgrade(secret, account.credential_hash)
        if not is_valid:
            return VerificationOutcome(VerificationReason.WRONG_SECRET, account)

        if new_hash:
            # Upgrade is retried on the next login if the write fails
            try:
                await call_with_timeout(
                    self.store.update_credential_hash(account.identity, new_hash),
                    self.timeout,
                    "credential_store",
                )
                account.credential_hash = new_hash
                logger.info("credential_hash_upgraded")
            except StoreUnavailable as e:
                logger.warning("credential_hash_upgrade_failed", error=str(e))

        return VerificationOutcome(VerificationReason.OK, account)
