"""
Prometheus Metrics
===================
Counters for the auth and compliance core, on a dedicated registry.
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

AUTH_REGISTRY = CollectorRegistry()

LOGIN_ATTEMPTS = Counter(
    name="auth_login_attempts_total",
    documentation="Login attempts by outcome",
    labelnames=["outcome"],
    registry=AUTH_REGISTRY,
)

LOGIN_LATENCY = Histogram(
    name="auth_login_duration_seconds",
    documentation="Time spent handling a login request",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=AUTH_REGISTRY,
)

AUTHORIZATION_DECISIONS = Counter(
    name="auth_authorization_decisions_total",
    documentation="Authorization checks by decision",
    labelnames=["granted"],
    registry=AUTH_REGISTRY,
)

AUDIT_WRITE_FAILURES = Counter(
    name="auth_audit_write_failures_total",
    documentation="Audit events that could not be written to the sink",
    registry=AUTH_REGISTRY,
)

COMPLIANCE_VIOLATIONS = Counter(
    name="compliance_violations_total",
    documentation="Compliance violations raised",
    labelnames=["violation_type", "severity"],
    registry=AUTH_REGISTRY,
)

ALERTS_PUBLISHED = Counter(
    name="compliance_alerts_published_total",
    documentation="Alert notifications by delivery status",
    labelnames=["status"],
    registry=AUTH_REGISTRY,
)


def get_metrics_text() -> tuple:
    """
    Render the registry in the Prometheus exposition format.

    Returns:
        Tuple of (body_bytes, content_type)
    """
    return generate_latest(AUTH_REGISTRY), CONTENT_TYPE_LATEST
