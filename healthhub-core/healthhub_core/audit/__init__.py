"""
Audit Logging Module
====================
Append-only, tamper-evident audit trail with hash chaining and long-term
retention.
"""

# Re-export all public APIs
from .event_types import AuditEventType, AuditAction, RiskLevel
from .models import AuditEvent
from .hashing import compute_event_hash, verify_chain_integrity
from .sink import AuditSink, InMemoryAuditSink, RedisAuditSink
from .logger import AuditLogger, assess_risk

__all__ = [
    # Event Types
    "AuditEventType",
    "AuditAction",
    "RiskLevel",
    # Models
    "AuditEvent",
    # Hashing
    "compute_event_hash",
    "verify_chain_integrity",
    # Sinks
    "AuditSink",
    "InMemoryAuditSink",
    "RedisAuditSink",
    # Logger
    "AuditLogger",
    "assess_risk",
]
