"""
Compliance Tests
================
Rule thresholds, the analysis pipeline and violation review.
"""

from datetime import datetime, timedelta, timezone

import pytest

from healthhub_core.audit import AuditEventType
from healthhub_core.compliance import (
    AuditHistory,
    ComplianceAnalyzer,
    ComplianceRule,
    InMemoryViolationStore,
    Severity,
    ViolationStatus,
    ViolationType,
    after_hours_access,
    bulk_data_access,
    excessive_failed_logins,
    suspicious_access_pattern,
)

from conftest import PASSWORD, START, make_event


def _series(count, start, step, **kwargs):
    return [make_event(start + step * i, **kwargs) for i in range(count)]


class TestRules:
    """Tests for the individual rule functions."""

    def test_excessive_failed_logins_counts_current_event(self):
        history = AuditHistory(_series(4, START, timedelta(minutes=5),
                                       event_type=AuditEventType.AUTHENTICATION, success=False))
        event = make_event(START + timedelta(minutes=30),
                           event_type=AuditEventType.AUTHENTICATION, success=False)

        violation = excessive_failed_logins(event, history)

        assert violation.violation_type == ViolationType.EXCESSIVE_FAILED_LOGINS
        assert violation.severity == Severity.MEDIUM
        assert violation.identity == "a@x.com"

    def test_excessive_failed_logins_ignores_old_failures(self):
        history = AuditHistory(_series(4, START, timedelta(minutes=5),
                                       event_type=AuditEventType.AUTHENTICATION, success=False))
        event = make_event(START + timedelta(minutes=61),
                           event_type=AuditEventType.AUTHENTICATION, success=False)

        assert excessive_failed_logins(event, history) is None

    def test_bulk_access_threshold_is_exclusive(self):
        """100 reads is allowed, 101 is a violation."""
        history = AuditHistory(_series(99, START, timedelta(seconds=5)))
        at_limit = make_event(START + timedelta(minutes=9))
        assert bulk_data_access(at_limit, history) is None

        history.events.append(at_limit)
        over = make_event(START + timedelta(minutes=10))
        violation = bulk_data_access(over, history)

        assert violation.severity == Severity.HIGH
        assert violation.violation_type == ViolationType.BULK_DATA_ACCESS

    def test_bulk_access_only_counts_data_access(self):
        history = AuditHistory(_series(150, START, timedelta(seconds=1),
                                       event_type=AuditEventType.AUTHORIZATION))

        assert bulk_data_access(make_event(START + timedelta(minutes=3)), history) is None

    def test_new_origin_is_suspicious(self):
        history = AuditHistory(_series(30, START, timedelta(days=1)))
        event = make_event(START + timedelta(days=30), origin="203.0.113.9")

        violation = suspicious_access_pattern(event, history)

        assert violation.violation_type == ViolationType.SUSPICIOUS_ACCESS_PATTERN
        assert violation.severity == Severity.HIGH

    def test_new_account_has_no_origin_baseline(self):
        event = make_event(START, origin="203.0.113.9")

        assert suspicious_access_pattern(event, AuditHistory()) is None

    def test_high_event_rate_is_suspicious(self):
        history = AuditHistory(_series(50, START, timedelta(seconds=10),
                                       event_type=AuditEventType.AUTHORIZATION))
        event = make_event(START + timedelta(minutes=10), event_type=AuditEventType.AUTHORIZATION)

        assert suspicious_access_pattern(event, history) is not None

    @pytest.mark.parametrize("when, expected", [
        (datetime(2026, 1, 14, 6, 59, tzinfo=timezone.utc), True),
        (datetime(2026, 1, 14, 7, 0, tzinfo=timezone.utc), False),
        (datetime(2026, 1, 14, 19, 0, tzinfo=timezone.utc), False),
        (datetime(2026, 1, 14, 19, 1, tzinfo=timezone.utc), True),
        (datetime(2026, 1, 17, 12, 0, tzinfo=timezone.utc), True),  # Saturday
    ])
    def test_after_hours(self, when, expected):
        rule = after_hours_access("UTC")

        violation = rule(make_event(when), AuditHistory())

        assert (violation is not None) is expected

    def test_after_hours_ignores_other_event_types(self):
        rule = after_hours_access("UTC")
        event = make_event(datetime(2026, 1, 14, 3, 0, tzinfo=timezone.utc),
                           event_type=AuditEventType.AUTHORIZATION)

        assert rule(event, AuditHistory()) is None

    def test_after_hours_uses_business_timezone(self):
        """14:00 UTC is 09:00 in New York; 01:00 UTC is 20:00 the evening before."""
        rule = after_hours_access("America/New_York")

        assert rule(make_event(datetime(2026, 1, 14, 14, 0, tzinfo=timezone.utc)), AuditHistory()) is None
        assert rule(make_event(datetime(2026, 1, 15, 1, 0, tzinfo=timezone.utc)), AuditHistory()) is not None


class TestAnalyzer:
    """Tests for independent rule evaluation."""

    def test_multiple_rules_fire_for_one_event(self):
        analyzer = ComplianceAnalyzer()
        history = AuditHistory(_series(100, START, timedelta(seconds=5)))
        event = make_event(START + timedelta(minutes=9), origin="203.0.113.9")

        types = {v.violation_type for v in analyzer.analyze(event, history)}

        assert types == {ViolationType.BULK_DATA_ACCESS, ViolationType.SUSPICIOUS_ACCESS_PATTERN}

    def test_broken_rule_does_not_hide_others(self):
        def broken(event, history):
            raise RuntimeError("bad rule")

        analyzer = ComplianceAnalyzer([
            ComplianceRule("broken", ViolationType.AFTER_HOURS_ACCESS, broken, timedelta(hours=1)),
            ComplianceRule("bulk", ViolationType.BULK_DATA_ACCESS, bulk_data_access, timedelta(minutes=15)),
        ])
        history = AuditHistory(_series(100, START, timedelta(seconds=5)))

        violations = analyzer.analyze(make_event(START + timedelta(minutes=9)), history)

        assert [v.violation_type for v in violations] == [ViolationType.BULK_DATA_ACCESS]


class TestCompliancePipeline:
    """End-to-end analysis of recorded audit events."""

    @pytest.mark.asyncio
    async def test_101_reads_yield_exactly_one_bulk_violation(self, core, clock, alerts):
        for i in range(101):
            await core.record_compliance_event(
                AuditEventType.DATA_ACCESS,
                "PATIENT_READ",
                identity="a@x.com",
                resource_type="patients",
                resource_id=f"p-{i}",
                origin="10.0.0.1",
            )
            clock.advance(seconds=5)

        await core.drain()

        bulk = await core.pipeline.store.find_recent("a@x.com", ViolationType.BULK_DATA_ACCESS, START)
        assert len(bulk) == 1
        assert bulk[0].severity == Severity.HIGH
        assert bulk[0].identity == "a@x.com"
        assert bulk[0].status == ViolationStatus.OPEN
        assert ViolationType.BULK_DATA_ACCESS in {a.violation_type for a in alerts.published}

    @pytest.mark.asyncio
    async def test_redelivered_event_is_ignored(self, core, clock):
        for _ in range(101):
            await core.record_compliance_event(AuditEventType.DATA_ACCESS, "PATIENT_READ", "a@x.com")
            clock.advance(seconds=5)
        await core.drain()
        before = len(core.pipeline.store.violations)

        last = core.audit.sink.events[-1]
        assert await core.pipeline.process(last) == []
        assert len(core.pipeline.store.violations) == before

    @pytest.mark.asyncio
    async def test_login_from_unseen_origin_after_30_days(self, core, clock, alerts):
        """Same identity, 30 days from one origin, then a login from a new one."""
        for _ in range(30):
            result = await core.authenticate("a@x.com", PASSWORD, origin="10.0.0.1")
            assert result.granted is True
            clock.advance(days=1)

        result = await core.authenticate("a@x.com", PASSWORD, origin="203.0.113.9")
        await core.drain()

        suspicious = await core.pipeline.store.find_recent(
            "a@x.com", ViolationType.SUSPICIOUS_ACCESS_PATTERN, START
        )
        assert result.granted is True
        assert len(suspicious) == 1
        assert suspicious[0].severity == Severity.HIGH
        assert suspicious[0].source_event_id == core.audit.sink.events[-1].id
        assert "203.0.113.9" in suspicious[0].description
        assert any(a.violation_type == ViolationType.SUSPICIOUS_ACCESS_PATTERN for a in alerts.published)

    @pytest.mark.asyncio
    async def test_failed_logins_raise_medium_violation_without_alert(self, core, alerts):
        for _ in range(5):
            await core.authenticate("b@x.com", "wrong", origin="10.0.0.2")
        await core.drain()

        found = await core.pipeline.store.find_recent("b@x.com", ViolationType.EXCESSIVE_FAILED_LOGINS, START)
        assert len(found) == 1
        assert found[0].severity == Severity.MEDIUM
        assert alerts.published == []

    @pytest.mark.asyncio
    async def test_background_worker(self, core, clock):
        """Events submitted while the worker runs are analyzed without an explicit drain call."""
        await core.start()
        try:
            clock.now = datetime(2026, 1, 17, 12, 0, tzinfo=timezone.utc)  # Saturday
            await core.record_compliance_event(AuditEventType.DATA_ACCESS, "PATIENT_READ", "a@x.com")
        finally:
            await core.stop()

        found = await core.pipeline.store.find_recent("a@x.com", ViolationType.AFTER_HOURS_ACCESS, START)
        assert len(found) == 1

    @pytest.mark.asyncio
    async def test_rejects_auth_event_types_from_handlers(self, core):
        with pytest.raises(ValueError):
            await core.record_compliance_event(AuditEventType.AUTHENTICATION, "FAKE_LOGIN", "a@x.com")


class TestViolationStore:
    """Tests for the review lifecycle."""

    @pytest.mark.asyncio
    async def test_update_status(self):
        from healthhub_core.compliance.models import ComplianceViolation

        store = InMemoryViolationStore()
        violation = ComplianceViolation(
            id="v-1",
            violation_type=ViolationType.BULK_DATA_ACCESS,
            severity=Severity.HIGH,
            description="101 data access events within 15 minutes",
            timestamp=START,
            remediation="Review the export",
            identity="a@x.com",
        )
        await store.save(violation)

        updated = await store.update_status("v-1", ViolationStatus.REVIEWED)

        assert updated.status == ViolationStatus.REVIEWED
        assert await store.list(status=ViolationStatus.OPEN) == []
        assert [v.id for v in await store.list(status=ViolationStatus.REVIEWED)] == ["v-1"]
        assert await store.update_status("missing", ViolationStatus.CLOSED) is None
