"""
HealthHub Core Library
======================
Authentication and compliance core for HealthHub services.
"""

__version__ = "0.1.0"

# Configuration
from healthhub_core.config import AuthConfig, DEFAULT_ROLE_PERMISSIONS

# Errors
from healthhub_core.errors import (
    AuthCoreError,
    RateLimited,
    InvalidCredentials,
    AccountLocked,
    MFARequired,
    MFAChallengeFailed,
    SessionExpired,
    SessionInvalid,
    PermissionDenied,
    StoreUnavailable,
)

# Logging
from healthhub_core.logging_config import (
    setup_logging,
    bind_request_context,
    clear_request_context,
)

# Credential Store
from healthhub_core.store import (
    Account,
    LockState,
    CredentialStore,
    InMemoryCredentialStore,
    RedisCredentialStore,
)

# Rate Limiting
from healthhub_core.rate_limit import (
    InMemoryAttemptLimiter,
    RedisAttemptLimiter,
    LoginRateLimiter,
    RateLimitInfo,
    RateLimitResult,
)

# Lockout
from healthhub_core.lockout import LockoutManager, LockoutStatus

# Passwords
from healthhub_core.password import (
    hash_password,
    verify_password,
    verify_and_upgrade,
)

# Sessions
from healthhub_core.sessions import (
    SessionClaims,
    SessionManager,
    BearerTokenCodec,
)

# MFA
from healthhub_core.mfa import MFAChallengeManager

# Authorization
from healthhub_core.authz import Authorizer, has_permission

# Audit
from healthhub_core.audit import (
    AuditEventType,
    AuditAction,
    AuditEvent,
    AuditLogger,
    compute_event_hash,
    verify_chain_integrity,
)

# Compliance
from healthhub_core.compliance import (
    ComplianceAnalyzer,
    CompliancePipeline,
    ComplianceViolation,
    Severity,
    ViolationStatus,
    ViolationType,
)

# Alerts
from healthhub_core.alerts import (
    AlertDispatcher,
    AlertNotification,
    WebhookAlertPublisher,
)

# Service
from healthhub_core.service import AuthCore, AuthenticationResult, build_auth_core

__all__ = [
    "__version__",
    # Configuration
    "AuthConfig",
    "DEFAULT_ROLE_PERMISSIONS",
    # Errors
    "AuthCoreError",
    "RateLimited",
    "InvalidCredentials",
    "AccountLocked",
    "MFARequired",
    "MFAChallengeFailed",
    "SessionExpired",
    "SessionInvalid",
    "PermissionDenied",
    "StoreUnavailable",
    # Logging
    "setup_logging",
    "bind_request_context",
    "clear_request_context",
    # Credential Store
    "Account",
    "LockState",
    "CredentialStore",
    "InMemoryCredentialStore",
    "RedisCredentialStore",
    # Rate Limiting
    "InMemoryAttemptLimiter",
    "RedisAttemptLimiter",
    "LoginRateLimiter",
    "RateLimitInfo",
    "RateLimitResult",
    # Lockout
    "LockoutManager",
    "LockoutStatus",
    # Passwords
    "hash_password",
    "verify_password",
    "verify_and_upgrade",
    # Sessions
    "SessionClaims",
    "SessionManager",
    "BearerTokenCodec",
    # MFA
    "MFAChallengeManager",
    # Authorization
    "Authorizer",
    "has_permission",
    # Audit
    "AuditEventType",
    "AuditAction",
    "AuditEvent",
    "AuditLogger",
    "compute_event_hash",
    "verify_chain_integrity",
    # Compliance
    "ComplianceAnalyzer",
    "CompliancePipeline",
    "ComplianceViolation",
    "Severity",
    "ViolationStatus",
    "ViolationType",
    # Alerts
    "AlertDispatcher",
    "AlertNotification",
    "WebhookAlertPublisher",
    # Service
    "AuthCore",
    "AuthenticationResult",
    "build_auth_core",
]
