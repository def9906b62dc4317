"""
MFA Tests
=========
Second-factor challenges after a correct password.
"""

import asyncio

import pytest

from healthhub_core import build_auth_core
from healthhub_core.audit import AuditAction
from healthhub_core.errors import SessionInvalid

from conftest import PASSWORD


class TestMFAFlow:
    """Tests for the pending-MFA login state."""

    @pytest.mark.asyncio
    async def test_password_yields_pending_state_not_session(self, core, sender):
        result = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")

        assert result.granted is False
        assert result.requires_mfa is True
        assert result.mfa_token
        assert result.token is None
        assert result.error_code == "MFA_REQUIRED"
        assert "m@x.com" in sender.codes

    @pytest.mark.asyncio
    async def test_correct_code_issues_session(self, core, sender):
        pending = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")

        result = await core.complete_mfa(pending.mfa_token, sender.codes["m@x.com"], origin="10.0.0.5")

        assert result.granted is True
        claims = await core.validate_token(result.token)
        assert claims.identity == "m@x.com"
        success = [e for e in core.audit.sink.events if e.action == AuditAction.AUTH_LOGIN_SUCCESS.value]
        assert success[-1].metadata["mfa"] is True

    @pytest.mark.asyncio
    async def test_challenge_is_single_use(self, core, sender):
        pending = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")
        code = sender.codes["m@x.com"]

        await core.complete_mfa(pending.mfa_token, code)
        replay = await core.complete_mfa(pending.mfa_token, code)

        assert replay.granted is False
        assert replay.error_code == "MFA_FAILED"

    @pytest.mark.asyncio
    async def test_wrong_codes_do_not_touch_lockout_counter(self, core, credential_store):
        """MFA failures are audited separately and never lock the account."""
        pending = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")

        for _ in range(3):
            result = await core.complete_mfa(pending.mfa_token, "000000x")
            assert result.error_code == "MFA_FAILED"

        account = await credential_store.find_by_identity("m@x.com")
        assert account.failed_attempts == 0
        failures = [e for e in core.audit.sink.events if e.action == AuditAction.AUTH_MFA_FAILED.value]
        assert len(failures) == 3
        assert all(e.identity == "m@x.com" for e in failures)
        assert [e.metadata["reason"] for e in failures] == ["wrong_code"] * 3

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, core, sender):
        pending = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")
        for _ in range(3):
            await core.complete_mfa(pending.mfa_token, "bad")

        result = await core.complete_mfa(pending.mfa_token, sender.codes["m@x.com"])

        assert result.granted is False
        failures = [e for e in core.audit.sink.events if e.action == AuditAction.AUTH_MFA_FAILED.value]
        assert failures[-1].metadata["reason"] == "attempts_exhausted"

    @pytest.mark.asyncio
    async def test_challenge_expires(self, core, sender, clock):
        pending = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")
        clock.advance(minutes=5)

        result = await core.complete_mfa(pending.mfa_token, sender.codes["m@x.com"])

        assert result.granted is False
        failures = [e for e in core.audit.sink.events if e.action == AuditAction.AUTH_MFA_FAILED.value]
        assert failures[-1].identity == "m@x.com"
        assert failures[-1].metadata["reason"] == "invalid_or_expired_token"

    @pytest.mark.asyncio
    async def test_forged_token_rejected(self, core):
        result = await core.complete_mfa("eyJjaWQiOiJ4In0.deadbeef", "123456")

        assert result.granted is False
        assert result.error_code == "MFA_FAILED"

    @pytest.mark.asyncio
    async def test_non_ascii_token_is_a_coarse_failure(self, core):
        result = await core.complete_mfa("abc.éé", "123456")

        assert result.granted is False
        assert result.error_code == "MFA_FAILED"
        assert result.status_code == 401

    @pytest.mark.asyncio
    async def test_session_token_is_not_a_challenge_token(self, core):
        """Both share a signing secret; the audience keeps them apart."""
        session = await core.authenticate("a@x.com", PASSWORD, origin="10.0.0.5")

        result = await core.complete_mfa(session.token, "123456")

        assert result.error_code == "MFA_FAILED"

    @pytest.mark.asyncio
    async def test_challenge_token_is_not_a_session(self, core):
        pending = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")

        with pytest.raises(SessionInvalid):
            await core.validate_token(pending.mfa_token)


class TestCodeDelivery:
    """Tests for failures of the code sender."""

    def _core(self, config, credential_store, clock, alerts, sender):
        return build_auth_core(
            config,
            credential_store=credential_store,
            clock=clock,
            sender=sender,
            alert_publisher=alerts,
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ConnectionError("sms provider down"), RuntimeError("bad payload")])
    async def test_sender_failure_is_reported_as_unavailable(
        self, config, credential_store, clock, alerts, error
    ):
        """A failing delivery channel should deny with a 503, not raise."""
        async def failing_sender(account, code):
            raise error

        core = self._core(config, credential_store, clock, alerts, failing_sender)

        result = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")

        assert result.granted is False
        assert result.requires_mfa is False
        assert result.status_code == 503
        assert result.error_code == "SERVICE_UNAVAILABLE"
        assert "sms provider" not in result.error
        last = core.audit.sink.events[-1]
        assert last.action == AuditAction.AUTH_UNAVAILABLE.value
        assert last.metadata["dependency"] == "mfa_sender"

    @pytest.mark.asyncio
    async def test_slow_sender_times_out(self, config, credential_store, clock, alerts):
        async def stuck_sender(account, code):
            await asyncio.sleep(10)

        core = self._core(config, credential_store, clock, alerts, stuck_sender)
        core.mfa.sender_timeout = 0.01

        result = await core.authenticate("m@x.com", PASSWORD, origin="10.0.0.5")

        assert result.status_code == 503
