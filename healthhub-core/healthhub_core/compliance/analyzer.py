"""
Compliance Analyzer
===================
Runs every rule against an audit event and its identity's history.
"""

from datetime import timedelta
from typing import Dict, List, Optional

import structlog

from ..audit import AuditEvent
from .models import ComplianceViolation, ViolationType
from .rules import AuditHistory, ComplianceRule, default_rules

logger = structlog.get_logger(__name__)


class ComplianceAnalyzer:
    """Evaluates rules independently; a rule error never hides other findings."""

    def __init__(self, rules: Optional[List[ComplianceRule]] = None):
        self.rules = rules if rules is not None else default_rules()
        self._suppress_for: Dict[ViolationType, timedelta] = {
            rule.violation_type: rule.suppress_for for rule in self.rules
        }

    def suppress_window(self, violation_type: ViolationType) -> timedelta:
        return self._suppress_for.get(violation_type, timedelta(0))

    def analyze(self, event: AuditEvent, history: AuditHistory) -> List[ComplianceViolation]:
        """
        Evaluate all rules for one event.

        Args:
            event: The event under analysis
            history: Earlier events of the same identity

        Returns:
            Candidate violations, at most one per rule
        """
        violations = []
        for rule in self.rules:
            try:
                violation = rule.evaluate(event, history)
            except Exception as e:
                logger.error(
                    "compliance_rule_failed",
                    rule=rule.name,
                    event_id=event.id,
                    error=str(e),
                    exc_info=True,
                )
                continue
            if violation is not None:
                violations.append(violation)
        return violations
