"""
Compliance Module
=================
Classifies the audit trail into policy violations and routes serious ones
to alerting.
"""

from .models import ComplianceViolation, Severity, ViolationStatus, ViolationType
from .rules import (
    AuditHistory,
    ComplianceRule,
    after_hours_access,
    bulk_data_access,
    default_rules,
    excessive_failed_logins,
    suspicious_access_pattern,
)
from .analyzer import ComplianceAnalyzer
from .store import InMemoryViolationStore, RedisViolationStore, ViolationStore
from .pipeline import CompliancePipeline

__all__ = [
    # Models
    "ComplianceViolation",
    "Severity",
    "ViolationStatus",
    "ViolationType",
    # Rules
    "AuditHistory",
    "ComplianceRule",
    "after_hours_access",
    "bulk_data_access",
    "default_rules",
    "excessive_failed_logins",
    "suspicious_access_pattern",
    # Analysis
    "ComplianceAnalyzer",
    "CompliancePipeline",
    # Storage
    "ViolationStore",
    "InMemoryViolationStore",
    "RedisViolationStore",
]
