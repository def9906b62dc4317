"""
Account Model
=============
User record as seen by the auth core.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class LockState(str, Enum):
    """Per-account lockout states."""
    UNLOCKED = "unlocked"
    LOCKED = "locked"


@dataclass
class Account:
    """A user record from the directory."""
    identity: str  # normalized email
    credential_hash: str
    role: str
    permissions: List[str] = field(default_factory=list)
    failed_attempts: int = 0
    lock_expires_at: Optional[datetime] = None
    mfa_enabled: bool = False
    mfa_channel: Optional[str] = None  # phone/email the OTP is sent to

    def lock_state(self, now: datetime) -> LockState:
        if self.lock_expires_at is not None and now < self.lock_expires_at:
            return LockState.LOCKED
        return LockState.UNLOCKED


def normalize_identity(identity: str) -> str:
    return identity.strip().lower()
