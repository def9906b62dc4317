"""
Alert Models
============
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..compliance import ComplianceViolation, Severity, ViolationType


class AlertNotification(BaseModel):
    """Payload published to the notification channel."""
    model_config = ConfigDict(frozen=True)

    violation_id: str
    violation_type: ViolationType
    severity: Severity
    description: str
    identity: Optional[str] = None
    resource_id: Optional[str] = None
    timestamp: datetime
    remediation: str

    @classmethod
    def from_violation(cls, violation: ComplianceViolation) -> "AlertNotification":
        return cls(
            violation_id=violation.id,
            violation_type=violation.violation_type,
            severity=violation.severity,
            description=violation.description,
            identity=violation.identity,
            resource_id=violation.resource_id,
            timestamp=violation.timestamp,
            remediation=violation.remediation,
        )
