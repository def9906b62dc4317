"""
Auth Core Service
=================
Wires the rate limiter, lockout, credential verification, MFA, sessions,
authorization, audit trail and compliance pipeline into one entry point.

Usage:
    core = build_auth_core(AuthConfig())
    await core.start()

    result = await core.authenticate("a@x.com", "secret", origin="10.0.0.1")
    if result.granted:
        claims = await core.validate_token(result.token)
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from redis.asyncio import Redis

from .alerts import (
    AlertDispatcher,
    AlertPublisher,
    InMemoryAlertPublisher,
    WebhookAlertPublisher,
)
from .audit import (
    AuditAction,
    AuditEvent,
    AuditEventType,
    AuditLogger,
    InMemoryAuditSink,
    RedisAuditSink,
)
from .authz import Authorizer
from .clock import Clock, utcnow
from .compliance import (
    ComplianceAnalyzer,
    CompliancePipeline,
    InMemoryViolationStore,
    RedisViolationStore,
    default_rules,
)
from .config import AuthConfig
from .credentials import CredentialVerifier
from .errors import (
    AuthCoreError,
    InvalidCredentials,
    MFAChallengeFailed,
    MFARequired,
    RateLimited,
    SessionExpired,
    SessionInvalid,
    StoreUnavailable,
)
from .lockout import LockoutManager
from .logging_config import bind_request_context, clear_request_context
from .metrics import LOGIN_ATTEMPTS, LOGIN_LATENCY
from .mfa import CodeSender, InMemoryChallengeStore, MFAChallengeManager, RedisChallengeStore
from .rate_limit import (
    InMemoryAttemptLimiter,
    KeyType,
    LoginRateLimiter,
    RedisAttemptLimiter,
)
from .sessions import (
    BearerTokenCodec,
    InMemorySessionStore,
    RedisSessionStore,
    SessionClaims,
    SessionManager,
)
from .store import (
    CredentialStore,
    InMemoryCredentialStore,
    LockState,
    RedisCredentialStore,
)
from .store.models import normalize_identity

logger = structlog.get_logger(__name__)

HANDLER_EVENT_TYPES = (
    AuditEventType.DATA_ACCESS,
    AuditEventType.DATA_MODIFICATION,
    AuditEventType.SYSTEM_ACCESS,
)


@dataclass
class AuthenticationResult:
    """Outcome of a login or MFA step, safe to return to the caller."""
    granted: bool
    request_id: str
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    requires_mfa: bool = False
    mfa_token: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retry_after: Optional[int] = None
    status_code: int = 200

    @classmethod
    def failure(cls, error: AuthCoreError, request_id: str) -> "AuthenticationResult":
        payload = error.to_user_payload(request_id)
        return cls(
            granted=False,
            request_id=request_id,
            error=payload["message"],
            error_code=payload["error"],
            retry_after=getattr(error, "retry_after", None),
            status_code=error.status_code,
        )

    @classmethod
    def pending_mfa(cls, pending: MFARequired, request_id: str) -> "AuthenticationResult":
        """Password accepted; the caller continues with the challenge token."""
        return cls(
            granted=False,
            request_id=request_id,
            requires_mfa=True,
            mfa_token=pending.challenge_token,
            error_code=pending.code,
        )


class AuthCore:
    """Authentication and compliance entry point."""

    def __init__(
        self,
        config: AuthConfig,
        rate_limiter: LoginRateLimiter,
        credentials: CredentialVerifier,
        lockout: LockoutManager,
        sessions: SessionManager,
        mfa: MFAChallengeManager,
        authorizer: Authorizer,
        audit: AuditLogger,
        pipeline: CompliancePipeline,
        dispatcher: AlertDispatcher,
        clock: Optional[Clock] = None,
    ):
        self.config = config
        self.rate_limiter = rate_limiter
        self.credentials = credentials
        self.lockout = lockout
        self.sessions = sessions
        self.mfa = mfa
        self.authorizer = authorizer
        self.audit = audit
        self.pipeline = pipeline
        self.dispatcher = dispatcher
        self.clock = clock or utcnow

    async def start(self) -> None:
        """Start the compliance and alert workers."""
        self.dispatcher.start()
        self.pipeline.start()
        logger.info("auth_core_started", service=self.config.service_name)

    async def stop(self) -> None:
        """Drain queued analysis and alerts, then stop the workers."""
        await self.pipeline.stop()
        await self.dispatcher.stop()
        logger.info("auth_core_stopped")

    async def drain(self) -> None:
        """Wait for pending compliance analysis and alert delivery."""
        await self.pipeline.drain()
        await self.dispatcher.drain()

    # =========================================================================
    # Login
    # =========================================================================

    async def authenticate(
        self,
        identity: str,
        secret: str,
        origin: str = "unknown",
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> AuthenticationResult:
        """
        Verify a login attempt.

        Every outcome is audited. Errors are reported as a coarse result;
        the detailed reason stays in the logs and the audit trail.
        """
        identity = normalize_identity(identity or "")
        request_id = bind_request_context(request_id, identity=identity)
        started = time.perf_counter()
        try:
            result = await self._authenticate(identity, secret, origin, user_agent, request_id)
        except MFARequired as pending:
            result = AuthenticationResult.pending_mfa(pending, request_id)
        except AuthCoreError as e:
            await self._report_failure(e, identity, origin, user_agent)
            result = AuthenticationResult.failure(e, request_id)
        finally:
            LOGIN_LATENCY.observe(time.perf_counter() - started)
            clear_request_context()

        LOGIN_ATTEMPTS.labels(outcome=self._outcome(result)).inc()
        return result

    async def _authenticate(
        self,
        identity: str,
        secret: str,
        origin: str,
        user_agent: Optional[str],
        request_id: str,
    ) -> AuthenticationResult:
        try:
            await self.rate_limiter.check(identity, origin)
        except RateLimited as limited:
            await self._on_rate_limited(limited, identity, origin, user_agent)
            raise

        account = await self.credentials.lookup(identity)
        if account is not None:
            account = await self.lockout.ensure_unlocked(account, origin, user_agent)

        outcome = await self.credentials.verify_account(account, secret)
        if not outcome.verified:
            await self.lockout.record_failure(
                identity, account, outcome.reason.value, origin, user_agent
            )
            logger.info("login_failed", reason=outcome.reason.value)
            raise InvalidCredentials(outcome.reason.value)

        await self.lockout.record_success(account)

        if account.mfa_enabled:
            mfa_token, challenge = await self.mfa.create(account)
            await self.audit.record(
                AuditEventType.AUTHENTICATION,
                AuditAction.AUTH_MFA_REQUIRED,
                identity=account.identity,
                success=True,
                origin=origin,
                user_agent=user_agent,
                metadata={"challenge_expires_at": challenge.expires_at.isoformat()},
            )
            raise MFARequired(mfa_token)

        return await self._grant(account, origin, user_agent, request_id, mfa=False)

    async def _grant(self, account, origin, user_agent, request_id, mfa: bool) -> AuthenticationResult:
        issued = await self.sessions.issue(account)
        await self.audit.record(
            AuditEventType.AUTHENTICATION,
            AuditAction.AUTH_LOGIN_SUCCESS,
            identity=account.identity,
            success=True,
            origin=origin,
            user_agent=user_agent,
            metadata={"mfa": mfa, "role": account.role},
        )
        logger.info("login_succeeded", mfa=mfa)
        return AuthenticationResult(
            granted=True,
            request_id=request_id,
            token=issued.token,
            expires_at=issued.expires_at,
        )

    async def _on_rate_limited(
        self,
        limited: RateLimited,
        identity: str,
        origin: str,
        user_agent: Optional[str],
    ) -> None:
        # A locked account reports the lock rather than the throttle
        if limited.key_type == KeyType.IDENTITY.value:
            account = await self.credentials.lookup(identity)
            if account is not None and account.lock_state(self.clock()) == LockState.LOCKED:
                await self.lockout.ensure_unlocked(account, origin, user_agent)

        await self.audit.record(
            AuditEventType.AUTHENTICATION,
            AuditAction.AUTH_RATE_LIMITED,
            identity=identity,
            success=False,
            origin=origin,
            user_agent=user_agent,
            metadata={"key_type": limited.key_type, "retry_after": limited.retry_after},
        )

    async def _report_failure(
        self,
        error: AuthCoreError,
        identity: Optional[str],
        origin: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        if not isinstance(error, StoreUnavailable):
            return

        logger.error(
            "auth_dependency_unavailable",
            dependency=error.dependency,
            detail=error.detail,
        )
        try:
            await self.audit.record(
                AuditEventType.AUTHENTICATION,
                AuditAction.AUTH_UNAVAILABLE,
                identity=identity,
                success=False,
                origin=origin,
                user_agent=user_agent,
                metadata={"dependency": error.dependency},
            )
        except StoreUnavailable as audit_error:
            logger.error("audit_unavailable_during_outage", error=str(audit_error))

    @staticmethod
    def _outcome(result: AuthenticationResult) -> str:
        if result.granted:
            return "granted"
        return (result.error_code or "denied").lower()

    # =========================================================================
    # MFA
    # =========================================================================

    async def complete_mfa(
        self,
        mfa_token: str,
        code: str,
        origin: str = "unknown",
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> AuthenticationResult:
        """
        Complete the second factor and issue a session.

        MFA failures are audited but do not count toward account lockout.
        """
        claimed_identity = self.mfa.peek_identity(mfa_token or "")
        request_id = bind_request_context(request_id, identity=claimed_identity)
        try:
            try:
                identity = await self.mfa.complete(mfa_token or "", code)
            except MFAChallengeFailed as e:
                await self.audit.record(
                    AuditEventType.AUTHENTICATION,
                    AuditAction.AUTH_MFA_FAILED,
                    identity=claimed_identity,
                    success=False,
                    origin=origin,
                    user_agent=user_agent,
                    metadata={"reason": e.reason},
                )
                raise

            account = await self.credentials.lookup(identity)
            if account is None:
                raise InvalidCredentials("unknown_identity")
            account = await self.lockout.ensure_unlocked(account, origin, user_agent)
            result = await self._grant(account, origin, user_agent, request_id, mfa=True)
        except AuthCoreError as e:
            await self._report_failure(e, claimed_identity, origin, user_agent)
            result = AuthenticationResult.failure(e, request_id)
        finally:
            clear_request_context()

        LOGIN_ATTEMPTS.labels(outcome=self._outcome(result)).inc()
        return result

    # =========================================================================
    # Sessions and authorization
    # =========================================================================

    async def validate_token(self, token: str) -> SessionClaims:
        """
        Raises:
            SessionExpired, SessionInvalid, StoreUnavailable
        """
        return await self.sessions.validate(token)

    async def authorize(
        self,
        claims: SessionClaims,
        resource: str,
        action: str,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> bool:
        return await self.authorizer.authorize(
            claims, resource, action, origin, user_agent, resource_id
        )

    async def logout(
        self,
        token: str,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        End the session behind ``token``. Repeated calls are no-ops.

        Returns:
            True if a live session was revoked
        """
        try:
            claims = await self.sessions.validate(token)
        except (SessionExpired, SessionInvalid) as e:
            logger.info("logout_without_live_session", reason=e.reason)
            return False

        revoked = await self.sessions.revoke(claims.session_id)
        await self.audit.record(
            AuditEventType.AUTHENTICATION,
            AuditAction.AUTH_LOGOUT,
            identity=claims.identity,
            success=True,
            origin=origin,
            user_agent=user_agent,
        )
        return revoked

    async def revoke_sessions(self, identity: str, reason: str = "administrative") -> int:
        """Revoke every session of ``identity``, e.g. after a credential reset."""
        identity = normalize_identity(identity)
        count = await self.sessions.revoke_all(identity)
        await self.audit.record(
            AuditEventType.AUTHENTICATION,
            AuditAction.AUTH_SESSION_REVOKED,
            identity=identity,
            success=True,
            metadata={"reason": reason, "count": count},
        )
        return count

    # =========================================================================
    # Handler events
    # =========================================================================

    async def record_compliance_event(
        self,
        event_type: AuditEventType,
        action: str,
        identity: Optional[str],
        success: bool = True,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """
        Record a data or system access event from a request handler.

        The event is audited and analyzed like authentication events.
        """
        if event_type not in HANDLER_EVENT_TYPES:
            raise ValueError(
                f"{event_type.value} events are recorded by the auth core itself"
            )
        return await self.audit.record(
            event_type,
            action,
            identity=identity,
            success=success,
            origin=origin,
            user_agent=user_agent,
            resource_id=resource_id,
            resource_type=resource_type,
            metadata=metadata,
        )


def build_auth_core(
    config: Optional[AuthConfig] = None,
    redis: Optional[Redis] = None,
    credential_store: Optional[CredentialStore] = None,
    clock: Optional[Clock] = None,
    sender: Optional[CodeSender] = None,
    alert_publisher: Optional[AlertPublisher] = None,
) -> AuthCore:
    """
    Build an AuthCore with Redis backends, or in-memory ones for development.

    Args:
        config: Settings (defaults read from the environment)
        redis: Async Redis client; created from ``config.redis_url`` if omitted
        credential_store: Directory adapter (defaults to the matching backend)
        clock: Time source (defaults to UTC now)
        sender: MFA code delivery
        alert_publisher: Alert channel (defaults to the configured webhook)
    """
    config = config or AuthConfig()
    config.validate()
    clock = clock or utcnow
    timeout = config.store_timeout_seconds

    if redis is None and config.redis_url:
        redis = Redis.from_url(config.redis_url)

    if redis is not None:
        identity_limiter = RedisAttemptLimiter(
            redis, config.rate_limit_max_attempts, config.rate_limit_window_seconds, timeout, clock
        )
        origin_limiter = RedisAttemptLimiter(
            redis, config.origin_rate_limit_max_attempts, config.rate_limit_window_seconds, timeout, clock
        )
        credential_store = credential_store or RedisCredentialStore(redis, timeout)
        session_store = RedisSessionStore(redis, timeout, clock=clock)
        challenge_store = RedisChallengeStore(redis, timeout, clock=clock)
        audit_sink = RedisAuditSink(redis, timeout, clock=clock)
        violation_store = RedisViolationStore(
            redis, timeout, retention_seconds=config.audit_retention_seconds
        )
    else:
        logger.warning("auth_core_in_memory_backends", reason="no redis configured")
        identity_limiter = InMemoryAttemptLimiter(
            config.rate_limit_max_attempts, config.rate_limit_window_seconds, clock
        )
        origin_limiter = InMemoryAttemptLimiter(
            config.origin_rate_limit_max_attempts, config.rate_limit_window_seconds, clock
        )
        credential_store = credential_store or InMemoryCredentialStore()
        session_store = InMemorySessionStore(clock)
        challenge_store = InMemoryChallengeStore(clock)
        audit_sink = InMemoryAuditSink()
        violation_store = InMemoryViolationStore()

    if alert_publisher is None:
        if config.alert_webhook_url:
            alert_publisher = WebhookAlertPublisher(
                config.alert_webhook_url, config.alert_timeout_seconds
            )
        else:
            logger.warning("alert_webhook_not_configured")
            alert_publisher = InMemoryAlertPublisher()

    audit = AuditLogger(
        audit_sink,
        config.service_name,
        config.audit_retention_seconds,
        timeout=timeout,
        fail_closed=config.audit_fail_closed,
        clock=clock,
    )
    dispatcher = AlertDispatcher(alert_publisher)
    pipeline = CompliancePipeline(
        audit_sink,
        violation_store,
        ComplianceAnalyzer(default_rules(
            config.business_timezone,
            config.business_hours_start,
            config.business_hours_end,
        )),
        dispatcher=dispatcher,
        max_queue_size=config.compliance_queue_size,
        timeout=timeout,
    )
    audit.add_listener(pipeline.submit)

    return AuthCore(
        config=config,
        rate_limiter=LoginRateLimiter(identity_limiter, origin_limiter),
        credentials=CredentialVerifier(credential_store, timeout),
        lockout=LockoutManager(
            credential_store,
            audit,
            config.lockout_max_attempts,
            config.lockout_duration_seconds,
            timeout,
            clock,
        ),
        sessions=SessionManager(
            session_store,
            BearerTokenCodec(config.jwt_secret, config.jwt_algorithm, config.jwt_issuer, clock),
            config.session_ttl_seconds,
            timeout,
            clock,
        ),
        mfa=MFAChallengeManager(
            challenge_store,
            config.jwt_secret,
            sender,
            config.mfa_challenge_ttl_seconds,
            config.mfa_max_attempts,
            config.mfa_code_length,
            timeout=timeout,
            clock=clock,
        ),
        authorizer=Authorizer(audit, config.role_permissions),
        audit=audit,
        pipeline=pipeline,
        dispatcher=dispatcher,
        clock=clock,
    )
