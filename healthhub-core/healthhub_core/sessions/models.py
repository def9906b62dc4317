"""
Session Models
==============
Session registry records and decoded bearer token claims.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


@dataclass
class SessionRecord:
    """Minimal server-side session entry. Its presence makes a token usable."""
    session_id: str
    identity: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "identity": self.identity,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        return cls(
            session_id=data["session_id"],
            identity=data["identity"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


@dataclass
class SessionClaims:
    """Claims carried by a bearer token."""
    identity: str
    role: str
    session_id: str
    issued_at: datetime
    expires_at: datetime
    permissions: List[str] = field(default_factory=list)

    def to_payload(self, issuer: str) -> Dict[str, Any]:
        """JWT payload (registered claim names where they exist)."""
        return {
            "sub": self.identity,
            "role": self.role,
            "permissions": list(self.permissions),
            "sid": self.session_id,
            "iat": int(self.issued_at.timestamp()),
            "exp": int(self.expires_at.timestamp()),
            "iss": issuer,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SessionClaims":
        return cls(
            identity=payload["sub"],
            role=payload["role"],
            session_id=payload["sid"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            permissions=list(payload.get("permissions") or []),
        )


@dataclass
class IssuedSession:
    """Result of a successful session issue."""
    token: str
    claims: SessionClaims

    @property
    def session_id(self) -> str:
        return self.claims.session_id

    @property
    def expires_at(self) -> datetime:
        return self.claims.expires_at
