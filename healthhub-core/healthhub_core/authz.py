"""
Authorization
=============
Permission checks against session claims and role configuration.

Permissions are ``resource:action`` strings. ``resource:*`` grants every
action on a resource and ``*:*`` grants everything. Every decision is
audited; repeated denials feed anomaly detection.
"""

from typing import Dict, Iterable, List, Optional

import structlog

from .audit import AuditAction, AuditEventType, AuditLogger
from .metrics import AUTHORIZATION_DECISIONS
from .sessions import SessionClaims

logger = structlog.get_logger(__name__)

GLOBAL_WILDCARD = "*:*"


def permission_grants(granted: str, resource: str, action: str) -> bool:
    """True if a single granted permission covers ``resource:action``."""
    if granted == GLOBAL_WILDCARD:
        return True
    granted_resource, _, granted_action = granted.partition(":")
    if granted_resource != resource:
        return False
    return granted_action in ("*", action)


def has_permission(permissions: Iterable[str], resource: str, action: str) -> bool:
    return any(permission_grants(p, resource, action) for p in permissions)


class Authorizer:
    """Grants or denies ``resource:action`` for a session."""

    def __init__(
        self,
        audit: AuditLogger,
        role_permissions: Optional[Dict[str, List[str]]] = None,
    ):
        self.audit = audit
        self.role_permissions = role_permissions or {}

    def permissions_for(self, claims: SessionClaims) -> List[str]:
        """Explicit session permissions followed by the role's."""
        return list(claims.permissions) + list(self.role_permissions.get(claims.role, []))

    async def authorize(
        self,
        claims: SessionClaims,
        resource: str,
        action: str,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> bool:
        """
        Decide and audit an access request.

        Returns:
            True if access is granted
        """
        granted = has_permission(self.permissions_for(claims), resource, action)

        AUTHORIZATION_DECISIONS.labels(granted=str(granted).lower()).inc()
        if not granted:
            logger.info("authorization_denied", resource=resource, action=action, role=claims.role)

        await self.audit.record(
            AuditEventType.AUTHORIZATION,
            AuditAction.AUTHZ_CHECK,
            identity=claims.identity,
            success=granted,
            origin=origin,
            user_agent=user_agent,
            resource_id=resource_id,
            resource_type=resource,
            metadata={
                "granted": granted,
                "resource": resource,
                "action": action,
                "role": claims.role,
            },
        )
        return granted
