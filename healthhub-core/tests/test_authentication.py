"""
Authentication Tests
====================
Login flow through rate limiting, lockout, verification and sessions.
"""

import asyncio
from unittest.mock import AsyncMock

import bcrypt
import pytest

from healthhub_core.audit import AuditAction, AuditEventType
from healthhub_core.password import async_ops
from healthhub_core.store import Account, LockState

from conftest import PASSWORD


def _actions(core, identity):
    return [e.action for e in core.audit.sink.events if e.identity == identity]


class TestLockout:
    """Tests for the per-account lockout state machine."""

    @pytest.mark.asyncio
    async def test_four_failures_then_success_resets_counter(self, core, credential_store):
        """a@x.com: 4 failures then success should not lock and should reset the counter."""
        for _ in range(4):
            result = await core.authenticate("a@x.com", "wrong", origin="10.0.0.1")
            assert result.error_code == "INVALID_CREDENTIALS"

        result = await core.authenticate("a@x.com", PASSWORD, origin="10.0.0.1")

        assert result.granted is True
        assert result.token
        account = await credential_store.find_by_identity("a@x.com")
        assert account.failed_attempts == 0
        assert account.lock_expires_at is None

        successes = [
            e for e in core.audit.sink.events
            if e.event_type == AuditEventType.AUTHENTICATION
            and e.action == AuditAction.AUTH_LOGIN_SUCCESS.value
        ]
        assert len(successes) == 1
        assert successes[0].identity == "a@x.com"

    @pytest.mark.asyncio
    async def test_fifth_failure_locks_and_sixth_is_rejected(self, core, credential_store):
        """b@x.com: 5th failure audits locked=true; 6th returns AccountLocked without checking the secret."""
        for _ in range(5):
            await core.authenticate("b@x.com", "wrong", origin="10.0.0.2")

        failures = [
            e for e in core.audit.sink.events
            if e.action == AuditAction.AUTH_FAILED_LOGIN.value
        ]
        assert len(failures) == 5
        assert [e.metadata["locked"] for e in failures] == [False] * 4 + [True]
        assert failures[-1].metadata["failed_attempts"] == 5

        core.credentials.verify_account = AsyncMock()
        result = await core.authenticate("b@x.com", PASSWORD, origin="10.0.0.2")

        assert result.granted is False
        assert result.error_code == "ACCOUNT_LOCKED"
        assert result.status_code == 423
        core.credentials.verify_account.assert_not_awaited()
        assert _actions(core, "b@x.com")[-1] == AuditAction.AUTH_ACCOUNT_LOCKED.value

    @pytest.mark.asyncio
    async def test_locked_account_rejected_from_new_origin(self, core, clock):
        """A lock applies to the account regardless of where the attempt comes from."""
        for _ in range(5):
            await core.authenticate("b@x.com", "wrong", origin="10.0.0.2")
        clock.advance(minutes=16)  # rate window over, lock still active

        result = await core.authenticate("b@x.com", PASSWORD, origin="198.51.100.4")

        assert result.error_code == "ACCOUNT_LOCKED"

    @pytest.mark.asyncio
    async def test_lock_expires_implicitly(self, core, clock, credential_store):
        """After the lock expiry, the attempt is judged on credentials alone."""
        for _ in range(5):
            await core.authenticate("b@x.com", "wrong", origin="10.0.0.2")
        clock.advance(minutes=31)

        result = await core.authenticate("b@x.com", PASSWORD, origin="10.0.0.2")

        assert result.granted is True
        account = await credential_store.find_by_identity("b@x.com")
        assert account.failed_attempts == 0
        assert account.lock_state(clock()) == LockState.UNLOCKED
        assert AuditAction.AUTH_ACCOUNT_UNLOCKED.value in _actions(core, "b@x.com")

    @pytest.mark.asyncio
    async def test_failure_after_expiry_starts_a_new_count(self, core, clock, credential_store):
        for _ in range(5):
            await core.authenticate("b@x.com", "wrong", origin="10.0.0.2")
        clock.advance(minutes=31)

        result = await core.authenticate("b@x.com", "still-wrong", origin="10.0.0.2")

        assert result.error_code == "INVALID_CREDENTIALS"
        account = await credential_store.find_by_identity("b@x.com")
        assert account.failed_attempts == 1
        assert account.lock_expires_at is None

    @pytest.mark.asyncio
    async def test_concurrent_failures_lock_exactly_once(self, core, credential_store):
        """Parallel wrong guesses should neither lose increments nor report the lock twice."""
        results = await asyncio.gather(*(
            core.authenticate("b@x.com", "wrong", origin=f"10.0.1.{i}") for i in range(8)
        ))

        assert not any(r.granted for r in results)
        account = await credential_store.find_by_identity("b@x.com")
        assert account.failed_attempts == 5
        assert account.lock_expires_at is not None
        locking = [
            e for e in core.audit.sink.events
            if e.action == AuditAction.AUTH_FAILED_LOGIN.value and e.metadata["locked"]
        ]
        assert len(locking) == 1


class TestCredentialVerification:
    """Tests for uniform failure reporting and hash upgrades."""

    @pytest.mark.asyncio
    async def test_unknown_identity_and_wrong_secret_look_identical(self, core):
        """Callers should not be able to tell unknown identities from wrong secrets."""
        unknown = await core.authenticate("nobody@x.com", "whatever", origin="10.0.0.3")
        wrong = await core.authenticate("a@x.com", "whatever", origin="10.0.0.3")

        assert unknown.error == wrong.error == "Invalid credentials"
        assert unknown.error_code == wrong.error_code == "INVALID_CREDENTIALS"
        assert unknown.status_code == wrong.status_code == 401

    @pytest.mark.asyncio
    async def test_empty_secret_costs_the_same_for_known_and_unknown(self, core, monkeypatch):
        """An empty secret should not skip hashing for an existing account."""
        calls = []
        real_check = async_ops._check_argon2

        def counting_check(secret, credential_hash):
            calls.append(credential_hash)
            return real_check(secret, credential_hash)

        monkeypatch.setattr(async_ops, "_check_argon2", counting_check)

        await core.authenticate("nobody@x.com", "", origin="10.0.0.3")
        unknown_calls = len(calls)
        calls.clear()
        known = await core.authenticate("a@x.com", "", origin="10.0.0.3")

        assert unknown_calls == len(calls) == 1
        assert known.error_code == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_unrecognised_hash_format_still_costs_a_verification(
        self, core, credential_store, monkeypatch
    ):
        calls = []
        real_check = async_ops._check_argon2

        def counting_check(secret, credential_hash):
            calls.append(credential_hash)
            return real_check(secret, credential_hash)

        monkeypatch.setattr(async_ops, "_check_argon2", counting_check)
        credential_store.add_account(Account("odd@x.com", "plaintext-secret", "nurse"))

        result = await core.authenticate("odd@x.com", "plaintext-secret", origin="10.0.0.3")

        assert result.error_code == "INVALID_CREDENTIALS"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_audit_keeps_the_internal_reason(self, core):
        await core.authenticate("nobody@x.com", "whatever", origin="10.0.0.3")

        event = core.audit.sink.events[-1]
        assert event.action == AuditAction.AUTH_FAILED_LOGIN.value
        assert event.metadata["reason"] == "unknown_identity"

    @pytest.mark.asyncio
    async def test_identity_is_normalized(self, core):
        result = await core.authenticate("  A@X.COM ", PASSWORD, origin="10.0.0.3")
        assert result.granted is True

    @pytest.mark.asyncio
    async def test_bcrypt_hash_upgraded_on_login(self, core, credential_store):
        """A legacy bcrypt hash should be replaced with Argon2id after a successful login."""
        legacy = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
        credential_store.add_account(Account("legacy@x.com", legacy, "nurse"))

        result = await core.authenticate("legacy@x.com", PASSWORD, origin="10.0.0.3")

        assert result.granted is True
        account = await credential_store.find_by_identity("legacy@x.com")
        assert account.credential_hash.startswith("$argon2id$")


class TestRateLimitedLogin:
    """Tests for rate limiting at the service level."""

    @pytest.mark.asyncio
    async def test_origin_limit_reports_generic_retry_message(self, core):
        for i in range(15):
            await core.authenticate(f"user{i}@x.com", "guess", origin="203.0.113.7")

        result = await core.authenticate("a@x.com", PASSWORD, origin="203.0.113.7")

        assert result.granted is False
        assert result.error_code == "RATE_LIMITED"
        assert result.status_code == 429
        assert result.retry_after == 900
        assert "Too many attempts" in result.error


class TestStoreUnavailable:
    """Tests for failing closed when a dependency is down."""

    @pytest.mark.asyncio
    async def test_credential_store_outage_denies_login(self, core, credential_store):
        """A directory outage should deny, not grant, and never leak detail."""
        credential_store.find_by_identity = AsyncMock(side_effect=OSError("connection reset"))

        result = await core.authenticate("a@x.com", PASSWORD, origin="10.0.0.1")

        assert result.granted is False
        assert result.status_code == 503
        assert result.error_code == "SERVICE_UNAVAILABLE"
        assert "credential_store" not in result.error
        assert "connection reset" not in result.error
        assert core.audit.sink.events[-1].action == AuditAction.AUTH_UNAVAILABLE.value

    @pytest.mark.asyncio
    async def test_audit_outage_does_not_fail_login(self, core):
        """Audit writes are best effort unless configured to fail closed."""
        core.audit.sink.append = AsyncMock(side_effect=OSError("disk full"))

        result = await core.authenticate("a@x.com", PASSWORD, origin="10.0.0.1")

        assert result.granted is True

    @pytest.mark.asyncio
    async def test_audit_outage_fails_login_when_fail_closed(self, core):
        core.audit.fail_closed = True
        core.audit.sink.append = AsyncMock(side_effect=OSError("disk full"))

        result = await core.authenticate("a@x.com", PASSWORD, origin="10.0.0.1")

        assert result.granted is False
        assert result.status_code == 503
