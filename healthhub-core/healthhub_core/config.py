"""
Auth Core Configuration
=======================
Thresholds, lifetimes and backend settings for the authentication and
compliance core. Defaults come from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes")


DEFAULT_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "admin": ["*:*"],
    "doctor": [
        "patients:read",
        "patients:update",
        "appointments:*",
        "medical_images:read",
        "transcriptions:*",
    ],
    "nurse": [
        "patients:read",
        "appointments:read",
        "appointments:update",
    ],
    "patient": [
        "profile:read",
        "profile:update",
        "appointments:read",
        "appointments:create",
    ],
}


@dataclass
class AuthConfig:
    """Configuration for the auth and compliance core."""
    service_name: str = os.environ.get("SERVICE_NAME", "healthhub-auth")

    # Bearer tokens
    jwt_secret: str = os.environ.get("AUTH_JWT_SECRET", "")
    jwt_algorithm: str = os.environ.get("AUTH_JWT_ALGORITHM", "HS256")
    jwt_issuer: str = os.environ.get("AUTH_JWT_ISSUER", "healthhub")
    session_ttl_seconds: int = _env_int("AUTH_SESSION_TTL_HOURS", 8) * 3600

    # Rate limiting
    rate_limit_max_attempts: int = _env_int("AUTH_RATE_LIMIT_MAX_ATTEMPTS", 5)
    rate_limit_window_seconds: int = _env_int("AUTH_RATE_LIMIT_WINDOW_SECONDS", 900)
    origin_limit_multiplier: int = _env_int("AUTH_ORIGIN_LIMIT_MULTIPLIER", 3)

    # Lockout
    lockout_max_attempts: int = _env_int("AUTH_LOCKOUT_MAX_ATTEMPTS", 5)
    lockout_duration_seconds: int = _env_int("AUTH_LOCKOUT_DURATION_SECONDS", 1800)

    # MFA
    mfa_challenge_ttl_seconds: int = _env_int("AUTH_MFA_TTL_SECONDS", 300)
    mfa_max_attempts: int = _env_int("AUTH_MFA_MAX_ATTEMPTS", 3)
    mfa_code_length: int = _env_int("AUTH_MFA_CODE_LENGTH", 6)

    # Audit
    audit_retention_days: int = _env_int("AUDIT_RETENTION_DAYS", 2555)  # 7 years
    audit_fail_closed: bool = _env_bool("AUDIT_FAIL_CLOSED", False)

    # Compliance
    business_timezone: str = os.environ.get("AUTH_BUSINESS_TIMEZONE", "UTC")
    business_hours_start: int = _env_int("AUTH_BUSINESS_HOURS_START", 7)
    business_hours_end: int = _env_int("AUTH_BUSINESS_HOURS_END", 19)
    compliance_queue_size: int = _env_int("COMPLIANCE_QUEUE_SIZE", 10000)

    # Alerts
    alert_webhook_url: Optional[str] = os.environ.get("AUTH_ALERT_WEBHOOK_URL") or None
    alert_timeout_seconds: float = _env_float("AUTH_ALERT_TIMEOUT_SECONDS", 5.0)

    # Backends
    redis_url: Optional[str] = os.environ.get("REDIS_URL") or None
    store_timeout_seconds: float = _env_float("AUTH_STORE_TIMEOUT_SECONDS", 2.0)

    role_permissions: Dict[str, List[str]] = field(
        default_factory=lambda: {
            role: list(perms) for role, perms in DEFAULT_ROLE_PERMISSIONS.items()
        }
    )

    @property
    def origin_rate_limit_max_attempts(self) -> int:
        """Per-origin threshold, a multiple of the per-identity one."""
        return self.rate_limit_max_attempts * self.origin_limit_multiplier

    @property
    def audit_retention_seconds(self) -> int:
        return self.audit_retention_days * 86400

    def validate(self) -> None:
        """Raise ValueError if the configuration cannot be used."""
        if not self.jwt_secret:
            raise ValueError(
                "AUTH_JWT_SECRET is required to sign bearer tokens"
            )
        if self.rate_limit_max_attempts < 1 or self.lockout_max_attempts < 1:
            raise ValueError("Attempt thresholds must be positive")
        if not 0 <= self.business_hours_start < self.business_hours_end <= 24:
            raise ValueError("Business hours must satisfy 0 <= start < end <= 24")
