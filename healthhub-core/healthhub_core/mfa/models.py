"""
MFA Models
==========
Pending second-factor challenges.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from dataclasses import dataclass


@dataclass
class MFAChallenge:
    """A pending second-factor challenge after a correct password."""
    id: str
    identity: str
    code_hash: str
    salt: str
    attempts_remaining: int
    expires_at: datetime
    created_at: datetime
    verified_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "identity": self.identity,
            "code_hash": self.code_hash,
            "salt": self.salt,
            "attempts_remaining": self.attempts_remaining,
            "expires_at": self.expires_at.isoformat(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MFAChallenge":
        return cls(
            id=data["id"],
            identity=data["identity"],
            code_hash=data["code_hash"],
            salt=data["salt"],
            attempts_remaining=int(data["attempts_remaining"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
