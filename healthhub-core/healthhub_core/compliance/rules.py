"""
Compliance Rules
================
Each rule is a pure function ``(event, history) -> Optional[violation]``.
Rules are independent of each other and of evaluation order; thresholds are
explicit so every finding can be explained to an auditor.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Callable, List, Optional, Set
from zoneinfo import ZoneInfo

from ..audit import AuditEvent, AuditEventType
from .models import ComplianceViolation, Severity, ViolationType

FAILED_LOGIN_THRESHOLD = 5
FAILED_LOGIN_WINDOW = timedelta(hours=1)

BULK_ACCESS_THRESHOLD = 100
BULK_ACCESS_WINDOW = timedelta(minutes=15)

RAPID_ACCESS_THRESHOLD = 50
RAPID_ACCESS_WINDOW = timedelta(minutes=15)

ORIGIN_HISTORY_WINDOW = timedelta(days=30)

AFTER_HOURS_SUPPRESSION = timedelta(hours=1)


@dataclass
class AuditHistory:
    """Earlier events of the same identity, oldest first, current event excluded."""
    events: List[AuditEvent] = field(default_factory=list)

    def since(self, cutoff: datetime) -> List[AuditEvent]:
        return [e for e in self.events if e.timestamp >= cutoff]

    def origins_since(self, cutoff: datetime) -> Set[str]:
        return {e.origin for e in self.since(cutoff) if e.origin}


Rule = Callable[[AuditEvent, AuditHistory], Optional[ComplianceViolation]]


@dataclass
class ComplianceRule:
    """A named rule and how long a repeat finding is suppressed for."""
    name: str
    violation_type: ViolationType
    evaluate: Rule
    suppress_for: timedelta


def _violation(
    event: AuditEvent,
    violation_type: ViolationType,
    severity: Severity,
    description: str,
    remediation: str,
) -> ComplianceViolation:
    return ComplianceViolation(
        id=str(uuid.uuid4()),
        violation_type=violation_type,
        severity=severity,
        description=description,
        timestamp=event.timestamp,
        remediation=remediation,
        identity=event.identity,
        resource_id=event.resource_id,
        source_event_id=event.id,
    )


def excessive_failed_logins(
    event: AuditEvent, history: AuditHistory
) -> Optional[ComplianceViolation]:
    """>= 5 authentication failures in the trailing hour."""
    if event.event_type != AuditEventType.AUTHENTICATION or event.success:
        return None

    cutoff = event.timestamp - FAILED_LOGIN_WINDOW
    failures = 1 + sum(
        1 for e in history.since(cutoff)
        if e.event_type == AuditEventType.AUTHENTICATION and not e.success
    )
    if failures < FAILED_LOGIN_THRESHOLD:
        return None

    return _violation(
        event,
        ViolationType.EXCESSIVE_FAILED_LOGINS,
        Severity.MEDIUM,
        f"{failures} failed authentication attempts within the last hour",
        "Verify with the account owner and review the originating addresses",
    )


def bulk_data_access(
    event: AuditEvent, history: AuditHistory
) -> Optional[ComplianceViolation]:
    """More than 100 data reads in the trailing 15 minutes."""
    if event.event_type != AuditEventType.DATA_ACCESS:
        return None

    cutoff = event.timestamp - BULK_ACCESS_WINDOW
    reads = 1 + sum(
        1 for e in history.since(cutoff)
        if e.event_type == AuditEventType.DATA_ACCESS
    )
    if reads <= BULK_ACCESS_THRESHOLD:
        return None

    return _violation(
        event,
        ViolationType.BULK_DATA_ACCESS,
        Severity.HIGH,
        f"{reads} data access events within 15 minutes",
        "Confirm the export was authorized and review the records accessed",
    )


def suspicious_access_pattern(
    event: AuditEvent, history: AuditHistory
) -> Optional[ComplianceViolation]:
    """Access from an origin unseen in 30 days, or an unusually high event rate."""
    known_origins = history.origins_since(event.timestamp - ORIGIN_HISTORY_WINDOW)
    # New accounts have no baseline yet
    if event.origin and known_origins and event.origin not in known_origins:
        return _violation(
            event,
            ViolationType.SUSPICIOUS_ACCESS_PATTERN,
            Severity.HIGH,
            f"Access from previously unseen network origin {event.origin}",
            "Confirm the access with the account owner; revoke sessions if unrecognized",
        )

    recent = 1 + len(history.since(event.timestamp - RAPID_ACCESS_WINDOW))
    if recent > RAPID_ACCESS_THRESHOLD:
        return _violation(
            event,
            ViolationType.SUSPICIOUS_ACCESS_PATTERN,
            Severity.HIGH,
            f"{recent} events within 15 minutes",
            "Check for automated or scripted use of the account",
        )

    return None


def after_hours_access(
    timezone: str = "UTC",
    start_hour: int = 7,
    end_hour: int = 19,
) -> Rule:
    """
    Build the after-hours rule for a business timezone.

    Fires for DATA_ACCESS and AUTHENTICATION events before ``start_hour``,
    after ``end_hour``, or on a weekend.
    """
    zone = ZoneInfo(timezone)
    opens = time(start_hour, 0)
    closes = time(end_hour, 0) if end_hour < 24 else time.max

    def rule(event: AuditEvent, history: AuditHistory) -> Optional[ComplianceViolation]:
        if event.event_type not in (AuditEventType.DATA_ACCESS, AuditEventType.AUTHENTICATION):
            return None

        local = event.timestamp.astimezone(zone)
        weekend = local.weekday() >= 5
        local_time = local.time()
        if not weekend and opens <= local_time <= closes:
            return None

        when = "on a weekend" if weekend else "outside business hours"
        return _violation(
            event,
            ViolationType.AFTER_HOURS_ACCESS,
            Severity.MEDIUM,
            f"{event.event_type.value} {when} at {local.strftime('%Y-%m-%d %H:%M %Z')}",
            "Confirm the access was expected for the user's schedule",
        )

    return rule


def default_rules(
    timezone: str = "UTC",
    start_hour: int = 7,
    end_hour: int = 19,
) -> List[ComplianceRule]:
    return [
        ComplianceRule(
            "excessive_failed_logins",
            ViolationType.EXCESSIVE_FAILED_LOGINS,
            excessive_failed_logins,
            FAILED_LOGIN_WINDOW,
        ),
        ComplianceRule(
            "after_hours_access",
            ViolationType.AFTER_HOURS_ACCESS,
            after_hours_access(timezone, start_hour, end_hour),
            AFTER_HOURS_SUPPRESSION,
        ),
        ComplianceRule(
            "bulk_data_access",
            ViolationType.BULK_DATA_ACCESS,
            bulk_data_access,
            BULK_ACCESS_WINDOW,
        ),
        ComplianceRule(
            "suspicious_access_pattern",
            ViolationType.SUSPICIOUS_ACCESS_PATTERN,
            suspicious_access_pattern,
            RAPID_ACCESS_WINDOW,
        ),
    ]
