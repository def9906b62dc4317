"""
MFA Challenges
==============
Second-factor step after a correct password. Failures here are counted per
challenge and never touch the account's primary failure counter.
"""

import uuid
from datetime import timedelta
from typing import Awaitable, Callable, Optional, Tuple

import structlog

from ..clock import Clock, utcnow
from ..errors import MFAChallengeFailed, StoreUnavailable
from ..store import Account
from ..timeouts import call_with_timeout
from .hashing import generate_code, generate_salt, hash_code, verify_code_hash
from .models import MFAChallenge
from .proof_token import ChallengeToken
from .store import ChallengeStore

logger = structlog.get_logger(__name__)

# Delivers a code to the account's channel (SMS, email, ...)
CodeSender = Callable[[Account, str], Awaitable[None]]


async def log_only_sender(account: Account, code: str) -> None:
    """Default sender: records that a code was issued, never the code."""
    logger.info("mfa_code_issued", channel_configured=bool(account.mfa_channel))


class MFAChallengeManager:
    """Creates and completes MFA challenges."""

    def __init__(
        self,
        store: ChallengeStore,
        token_secret: str,
        sender: Optional[CodeSender] = None,
        ttl_seconds: int = 300,
        max_attempts: int = 3,
        code_length: int = 6,
        timeout: float = 2.0,
        sender_timeout: float = 5.0,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.tokens = ChallengeToken(token_secret)
        self.sender = sender or log_only_sender
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.code_length = code_length
        self.timeout = timeout
        self.sender_timeout = sender_timeout
        self.clock = clock or utcnow

    async def _deliver(self, account: Account, code: str) -> None:
        """
        Hand the code to the sender under a timeout.

        Raises:
            StoreUnavailable: the sender timed out or failed in any way
        """
        try:
            await call_with_timeout(
                self.sender(account, code), self.sender_timeout, "mfa_sender"
            )
        except StoreUnavailable:
            raise
        except Exception as e:
            logger.error("mfa_code_delivery_failed", error_type=type(e).__name__)
            raise StoreUnavailable("mfa_sender", type(e).__name__) from e

    async def create(self, account: Account) -> Tuple[str, MFAChallenge]:
        """
        Open a challenge for ``account`` and send its code.

        Returns:
            Tuple of (challenge_token, challenge)
        """
        now = self.clock()
        code = generate_code(self.code_length)
        salt = generate_salt()

        challenge = MFAChallenge(
            id=str(uuid.uuid4()),
            identity=account.identity,
            code_hash=hash_code(code, salt),
            salt=salt,
            attempts_remaining=self.max_attempts,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
            created_at=now,
        )
        await call_with_timeout(self.store.put(challenge), self.timeout, "mfa_store")
        await self._deliver(account, code)

        logger.info(
            "mfa_challenge_created",
            challenge_id=challenge.id,
            expires_in=self.ttl_seconds,
        )
        token = self.tokens.generate(challenge.id, account.identity, challenge.expires_at)
        return token, challenge

    async def complete(self, challenge_token: str, code: str) -> str:
        """
        Verify ``code`` for the challenge referenced by ``challenge_token``.

        Returns:
            The identity that completed the challenge

        Raises:
            MFAChallengeFailed: bad token, expired, exhausted or wrong code
        """
        now = self.clock()
        payload = self.tokens.verify(challenge_token, now)
        if payload is None:
            raise MFAChallengeFailed("invalid_or_expired_token")

        challenge_id = payload["cid"]
        challenge = await call_with_timeout(
            self.store.get(challenge_id), self.timeout, "mfa_store"
        )
        if challenge is None or challenge.identity != payload.get("sub"):
            raise MFAChallengeFailed("unknown_challenge")

        if challenge.is_expired(now):
            logger.warning("mfa_challenge_expired", challenge_id=challenge_id)
            await call_with_timeout(self.store.delete(challenge_id), self.timeout, "mfa_store")
            raise MFAChallengeFailed("expired")

        available = await call_with_timeout(
            self.store.consume_attempt(challenge_id), self.timeout, "mfa_store"
        )
        if available <= 0:
            logger.warning("mfa_attempts_exhausted", challenge_id=challenge_id)
            raise MFAChallengeFailed("attempts_exhausted")

        if not verify_code_hash(code or "", challenge.salt, challenge.code_hash):
            logger.warning(
                "mfa_code_mismatch",
                challenge_id=challenge_id,
                remaining=available - 1,
            )
            raise MFAChallengeFailed("wrong_code")

        # Single use
        await call_with_timeout(self.store.delete(challenge_id), self.timeout, "mfa_store")
        logger.info("mfa_challenge_completed", challenge_id=challenge_id)
        return challenge.identity

    def peek_identity(self, challenge_token: str) -> Optional[str]:
        """Identity named in a token, for auditing failures. Signature checked."""
        payload = self.tokens.verify(challenge_token)
        return payload.get("sub") if payload else None
