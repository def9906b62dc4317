"""
Session Manager
===============
Issues, validates and revokes bearer sessions.

Validation is two explicit steps: the token's own signature and expiry,
then the session registry lookup. A well-formed token for a revoked or
expired session is rejected.
"""

import secrets
from datetime import timedelta
from typing import Optional

import structlog

from ..clock import Clock, utcnow
from ..errors import SessionExpired, SessionInvalid
from ..store import Account
from ..timeouts import call_with_timeout
from .models import IssuedSession, SessionClaims, SessionRecord
from .store import SessionStore
from .tokens import BearerTokenCodec

logger = structlog.get_logger(__name__)


class SessionManager:
    """Bearer session lifecycle. Sessions are never renewed implicitly."""

    def __init__(
        self,
        store: SessionStore,
        codec: BearerTokenCodec,
        ttl_seconds: int = 8 * 3600,
        timeout: float = 2.0,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.codec = codec
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self.clock = clock or utcnow

    async def issue(self, account: Account) -> IssuedSession:
        """
        Create a session for ``account`` and return its bearer token.

        Raises:
            StoreUnavailable: if the session cannot be registered
        """
        now = self.clock()
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        session_id = secrets.token_urlsafe(32)

        await call_with_timeout(
            self.store.put(SessionRecord(
                session_id=session_id,
                identity=account.identity,
                created_at=now,
                expires_at=expires_at,
            )),
            self.timeout,
            "session_store",
        )

        claims = SessionClaims(
            identity=account.identity,
            role=account.role,
            session_id=session_id,
            issued_at=now,
            expires_at=expires_at,
            permissions=list(account.permissions),
        )
        logger.info("session_issued", expires_at=expires_at.isoformat())
        return IssuedSession(token=self.codec.encode(claims), claims=claims)

    async def validate(self, token: str) -> SessionClaims:
        """
        Validate a bearer token against its signature and the registry.

        Returns:
            The decoded claims

        Raises:
            SessionExpired: token or session past its expiry
            SessionInvalid: bad token, or session revoked or unknown
            StoreUnavailable: registry unreachable (fails closed)
        """
        if not token:
            raise SessionInvalid("missing_token")

        claims = self.codec.decode(token)

        record = await call_with_timeout(
            self.store.get(claims.session_id),
            self.timeout,
            "session_store",
        )
        if record is None:
            logger.info("session_not_found", reason="revoked_or_expired")
            raise SessionInvalid("session_revoked")
        if record.identity != claims.identity:
            logger.warning("session_identity_mismatch")
            raise SessionInvalid("session_mismatch")
        if record.is_expired(self.clock()):
            raise SessionExpired("session_expired")

        return claims

    async def revoke(self, session_id: str) -> bool:
        """
        Remove a session. Safe to call more than once.

        Returns:
            True if a live session was removed
        """
        removed = await call_with_timeout(
            self.store.delete(session_id),
            self.timeout,
            "session_store",
        )
        logger.info("session_revoked", existed=removed)
        return removed

    async def revoke_all(self, identity: str) -> int:
        """Remove every session belonging to ``identity``."""
        removed = await call_with_timeout(
            self.store.delete_for_identity(identity),
            self.timeout,
            "session_store",
        )
        logger.info("sessions_revoked", count=removed)
        return removed
