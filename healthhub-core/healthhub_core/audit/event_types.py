"""
Audit Event Types
=================
Event categories, action names and risk levels for the audit trail.
"""

from enum import Enum


class AuditEventType(str, Enum):
    """Audit event categories."""
    DATA_ACCESS = "DATA_ACCESS"
    DATA_MODIFICATION = "DATA_MODIFICATION"
    AUTHENTICATION = "AUTHENTICATION"
    AUTHORIZATION = "AUTHORIZATION"
    SYSTEM_ACCESS = "SYSTEM_ACCESS"


class AuditAction(str, Enum):
    """Action names recorded by the auth core."""
    # Authentication
    AUTH_LOGIN_SUCCESS = "AUTH_LOGIN_SUCCESS"
    AUTH_FAILED_LOGIN = "AUTH_FAILED_LOGIN"
    AUTH_ACCOUNT_LOCKED = "AUTH_ACCOUNT_LOCKED"
    AUTH_ACCOUNT_UNLOCKED = "AUTH_ACCOUNT_UNLOCKED"
    AUTH_RATE_LIMITED = "AUTH_RATE_LIMITED"
    AUTH_MFA_REQUIRED = "AUTH_MFA_REQUIRED"
    AUTH_MFA_FAILED = "AUTH_MFA_FAILED"
    AUTH_LOGOUT = "AUTH_LOGOUT"
    AUTH_SESSION_REVOKED = "AUTH_SESSION_REVOKED"
    AUTH_UNAVAILABLE = "AUTH_UNAVAILABLE"

    # Authorization
    AUTHZ_CHECK = "AUTHZ_CHECK"


class RiskLevel(str, Enum):
    """Risk assigned to an audit event when it is created."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
