"""
Auth Core Errors
================
Error taxonomy for the authentication path.

Each error carries a stable ``code`` and a coarse ``user_message``. Internal
detail (store names, reasons, timings) stays on the exception for logging and
is never part of the caller-visible payload.
"""

from datetime import datetime
from typing import Any, Dict, Optional


GENERIC_RETRY_MESSAGE = "Too many attempts. Please try again later."
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
SERVICE_UNAVAILABLE_MESSAGE = (
    "The service is temporarily unavailable. Please try again shortly."
)


class AuthCoreError(Exception):
    """Base class for all auth core failures."""
    code = "AUTH_ERROR"
    user_message = "Authentication failed"
    status_code = 401

    def to_user_payload(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        """Caller-visible error body. Never includes internal detail."""
        return {
            "error": self.code,
            "message": self.user_message,
            "request_id": request_id,
        }


class RateLimited(AuthCoreError):
    """Too many attempts for an identity or network origin."""
    code = "RATE_LIMITED"
    user_message = GENERIC_RETRY_MESSAGE
    status_code = 429

    def __init__(self, key_type: str, retry_after: Optional[int] = None):
        self.key_type = key_type
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {key_type}")


class InvalidCredentials(AuthCoreError):
    """Unknown identity or wrong secret. Indistinguishable to the caller."""
    code = "INVALID_CREDENTIALS"
    user_message = INVALID_CREDENTIALS_MESSAGE
    status_code = 401

    def __init__(self, reason: str = "wrong_secret"):
        self.reason = reason
        super().__init__(f"Credential verification failed: {reason}")


class AccountLocked(AuthCoreError):
    """Account is inside an active lockout window."""
    code = "ACCOUNT_LOCKED"
    user_message = (
        "This account is temporarily locked due to repeated failed sign-in "
        "attempts. Please try again later."
    )
    status_code = 423

    def __init__(self, locked_until: Optional[datetime] = None):
        self.locked_until = locked_until
        super().__init__(f"Account locked until {locked_until}")


class MFARequired(AuthCoreError):
    """
    Password accepted; a second factor must be completed.

    Not a failure: AuthCore turns it into a pending result carrying
    ``challenge_token``.
    """
    code = "MFA_REQUIRED"
    user_message = "Additional verification required"
    status_code = 401

    def __init__(self, challenge_token: str):
        self.challenge_token = challenge_token
        super().__init__("Multi-factor authentication required")


class MFAChallengeFailed(AuthCoreError):
    """MFA code wrong, challenge expired or attempts exhausted."""
    code = "MFA_FAILED"
    user_message = "Verification failed"
    status_code = 401

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"MFA challenge failed: {reason}")


class SessionExpired(AuthCoreError):
    """Bearer token or its session has expired."""
    code = "SESSION_EXPIRED"
    user_message = "Your session has expired. Please sign in again."
    status_code = 401

    def __init__(self, reason: str = "token_expired"):
        self.reason = reason
        super().__init__(f"Session expired: {reason}")


class SessionInvalid(AuthCoreError):
    """Bearer token malformed, tampered, or its session revoked."""
    code = "SESSION_INVALID"
    user_message = "Invalid session. Please sign in again."
    status_code = 401

    def __init__(self, reason: str = "invalid_token"):
        self.reason = reason
        super().__init__(f"Session invalid: {reason}")


class PermissionDenied(AuthCoreError):
    """Authorization check denied the requested action."""
    code = "PERMISSION_DENIED"
    user_message = "You do not have permission to perform this action"
    status_code = 403

    def __init__(self, resource: str, action: str):
        self.resource = resource
        self.action = action
        super().__init__(f"Permission denied for {resource}:{action}")


class StoreUnavailable(AuthCoreError):
    """A backing dependency timed out or errored."""
    code = "SERVICE_UNAVAILABLE"
    user_message = SERVICE_UNAVAILABLE_MESSAGE
    status_code = 503

    def __init__(self, dependency: str, detail: Optional[str] = None):
        self.dependency = dependency
        self.detail = detail
        super().__init__(f"[{dependency}] unavailable: {detail or 'unknown error'}")
