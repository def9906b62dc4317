"""
Shared fixtures for healthhub-core tests.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from argon2 import PasswordHasher, Type

from healthhub_core.alerts import InMemoryAlertPublisher
from healthhub_core.audit import AuditEvent, AuditEventType, RiskLevel
from healthhub_core.config import AuthConfig
from healthhub_core.password import hash_password_sync, use_hasher
from healthhub_core.service import build_auth_core
from healthhub_core.store import Account, InMemoryCredentialStore

# Wednesday, inside business hours
START = datetime(2026, 1, 14, 10, 0, tzinfo=timezone.utc)

PASSWORD = "correct-horse-battery"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class CapturingSender:
    """MFA sender that keeps the last code per identity."""

    def __init__(self):
        self.codes = {}

    async def __call__(self, account, code):
        self.codes[account.identity] = code


def make_event(
    timestamp: datetime,
    event_type: AuditEventType = AuditEventType.DATA_ACCESS,
    identity: str = "a@x.com",
    success: bool = True,
    origin: str = "10.0.0.1",
    action: str = "PATIENT_READ",
) -> AuditEvent:
    return AuditEvent(
        id=str(uuid.uuid4()),
        event_type=event_type,
        action=action,
        identity=identity,
        timestamp=timestamp,
        success=success,
        risk_level=RiskLevel.LOW,
        service="test",
        retention_until=timestamp + timedelta(days=2555),
        origin=origin,
    )


@pytest.fixture(scope="session", autouse=True)
def fast_hasher():
    """Cheap Argon2 parameters so tests don't spend 300ms per hash."""
    use_hasher(PasswordHasher(
        time_cost=1,
        memory_cost=8,
        parallelism=1,
        hash_len=16,
        salt_len=16,
        type=Type.ID,
    ))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sender():
    return CapturingSender()


@pytest.fixture
def config():
    return AuthConfig(
        jwt_secret="test-signing-secret",
        redis_url=None,
        alert_webhook_url=None,
        audit_fail_closed=False,
        business_timezone="UTC",
    )


@pytest.fixture
def credential_store():
    credential_hash = hash_password_sync(PASSWORD)
    return InMemoryCredentialStore([
        Account("a@x.com", credential_hash, "doctor"),
        Account("b@x.com", credential_hash, "nurse"),
        Account("m@x.com", credential_hash, "patient", mfa_enabled=True, mfa_channel="+15550100"),
    ])


@pytest.fixture
def alerts():
    return InMemoryAlertPublisher()


@pytest.fixture
def core(config, credential_store, clock, sender, alerts):
    return build_auth_core(
        config,
        credential_store=credential_store,
        clock=clock,
        sender=sender,
        alert_publisher=alerts,
    )
