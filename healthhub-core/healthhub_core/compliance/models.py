"""
Compliance Models
=================
Violations derived from the audit trail.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ViolationType(str, Enum):
    EXCESSIVE_FAILED_LOGINS = "EXCESSIVE_FAILED_LOGINS"
    AFTER_HOURS_ACCESS = "AFTER_HOURS_ACCESS"
    BULK_DATA_ACCESS = "BULK_DATA_ACCESS"
    SUSPICIOUS_ACCESS_PATTERN = "SUSPICIOUS_ACCESS_PATTERN"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def requires_alert(self) -> bool:
        return self in (Severity.HIGH, Severity.CRITICAL)


class ViolationStatus(str, Enum):
    """Review lifecycle, driven by compliance staff."""
    OPEN = "OPEN"
    REVIEWED = "REVIEWED"
    CLOSED = "CLOSED"


@dataclass
class ComplianceViolation:
    """A policy-relevant finding raised by the analyzer."""
    id: str
    violation_type: ViolationType
    severity: Severity
    description: str
    timestamp: datetime
    remediation: str
    identity: Optional[str] = None
    resource_id: Optional[str] = None
    source_event_id: Optional[str] = None
    status: ViolationStatus = ViolationStatus.OPEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "violation_type": self.violation_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "remediation": self.remediation,
            "identity": self.identity,
            "resource_id": self.resource_id,
            "source_event_id": self.source_event_id,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComplianceViolation":
        return cls(
            id=data["id"],
            violation_type=ViolationType(data["violation_type"]),
            severity=Severity(data["severity"]),
            description=data["description"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            remediation=data["remediation"],
            identity=data.get("identity"),
            resource_id=data.get("resource_id"),
            source_event_id=data.get("source_event_id"),
            status=ViolationStatus(data.get("status", ViolationStatus.OPEN.value)),
        )
