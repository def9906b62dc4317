"""
Audit Models
=============
Immutable audit log entries.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .event_types import AuditEventType, RiskLevel


@dataclass(frozen=True)
class AuditEvent:
    """An audit log entry with hash chain support. Never mutated."""
    id: str
    event_type: AuditEventType
    action: str
    identity: Optional[str]
    timestamp: datetime
    success: bool
    risk_level: RiskLevel
    service: str
    retention_until: datetime
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    origin: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    hash: str = ""
    previous_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d["event_type"] = self.event_type.value
        d["risk_level"] = self.risk_level.value
        d["timestamp"] = self.timestamp.isoformat()
        d["retention_until"] = self.retention_until.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEvent":
        data = dict(data)
        data["event_type"] = AuditEventType(data["event_type"])
        data["risk_level"] = RiskLevel(data["risk_level"])
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        data["retention_until"] = datetime.fromisoformat(data["retention_until"])
        return cls(**data)
